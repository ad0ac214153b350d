from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from moneytracker.domain.services.transfer_service import (
    export_file_name,
    export_json_bundle,
    get_transactions_xlsx_stream,
    import_json_bundle,
    import_transactions_xlsx_upload,
)
from moneytracker.presentation.deps import get_db

router = APIRouter(prefix="/api/transfer", tags=["transfer"])


@router.get("/export/json")
def export_json(db: Session = Depends(get_db)):
    return JSONResponse(
        content=export_json_bundle(db),
        headers={
            "Content-Disposition": f"attachment; filename={export_file_name('json')}"
        },
    )


@router.post("/import/json")
def import_json(data: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    try:
        return import_json_bundle(db, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/export/xlsx")
def export_xlsx(db: Session = Depends(get_db)):
    return get_transactions_xlsx_stream(db)


@router.post("/import/xlsx")
def import_xlsx(
    file: UploadFile = File(..., description="Spreadsheet exported by this app"),
    db: Session = Depends(get_db),
):
    try:
        return import_transactions_xlsx_upload(db, file)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    finally:
        file.file.close()
