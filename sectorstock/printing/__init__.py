from .qr import QrEncoder, QrImage
from .transfer_form import (
    PDF_MIME,
    ReportLabTransferRenderer,
    TransferForm,
    TransferLine,
)

__all__ = [
    "PDF_MIME",
    "QrEncoder",
    "QrImage",
    "ReportLabTransferRenderer",
    "TransferForm",
    "TransferLine",
]
