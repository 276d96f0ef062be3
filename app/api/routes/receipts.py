from fastapi import APIRouter, Depends
from fastapi.responses import Response

from app.api.deps import get_receipt_service
from app.services.receipts import Receipt, ReceiptService

router = APIRouter(tags=["receipts"])


def _pdf_response(receipt: Receipt, disposition: str) -> Response:
    return Response(
        content=receipt.content,
        media_type="application/pdf",
        headers={"Content-Disposition": receipt.content_disposition(disposition)},
    )


@router.get("/receipt/status/{uid}")
def receipt_status(uid: str, service: ReceiptService = Depends(get_receipt_service)):
    return service.receipt_status(uid)


@router.get("/receipt/download/{uid}")
def download_receipt(uid: str, service: ReceiptService = Depends(get_receipt_service)):
    return _pdf_response(service.render_for_user(uid), "attachment")


@router.get("/receipt/{uid}")
def view_receipt(uid: str, service: ReceiptService = Depends(get_receipt_service)):
    return _pdf_response(service.render_for_user(uid), "inline")


@router.get("/attendee-receipt/download/{txnid}")
def download_attendee_receipt(txnid: str, service: ReceiptService = Depends(get_receipt_service)):
    return _pdf_response(service.render_for_attendee(txnid), "attachment")


@router.get("/attendee-receipt/{txnid}")
def view_attendee_receipt(txnid: str, service: ReceiptService = Depends(get_receipt_service)):
    return _pdf_response(service.render_for_attendee(txnid), "inline")
