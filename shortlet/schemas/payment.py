from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class PaymentInitRequest(BaseModel):
    booking_id: str = Field(..., min_length=1, max_length=36)


class PaymentInitResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    booking_id: str
    provider: str
    reference: str
    checkout_url: Optional[str] = None
    already_succeeded: bool = Field(False, alias="alreadySucceeded")


class ReconcileSummaryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    scanned: int = 0
    locked: int = 0
    reconciled: int = 0
    failed_marked: int = Field(0, alias="failedMarked")
    skipped_locked: int = Field(0, alias="skippedLocked")
    skipped_terminal: int = Field(0, alias="skippedTerminal")
    flagged_for_reconcile: int = Field(0, alias="flaggedForReconcile")
    errors: list = Field(default_factory=list)
