from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Literal, Any
from datetime import datetime

class AssessmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    customer_id: int
    total_score: int
    risk_level: str
    action: str
    factors: Dict[str, int]
    city_zip_match: bool
    has_house_number: bool
    address_verified: bool
    is_first_order: bool
    is_blocked: bool
    recent_order_count: int
    action_taken: Optional[str] = None
    action_result: Optional[str] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    forwarded_to_call_center: bool = False
    call_attempts: int = 0
    call_intent_detected: Optional[str] = None
    created_at: datetime

class ReviewInput(BaseModel):
    action_result: Literal["approved", "rejected", "prepayment"]
    review_notes: Optional[str] = None
    reviewer_id: Optional[str] = None

class QueueItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    assessment_id: int
    order_id: int
    order_number: str
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    total_items: int
    total_amount: float
    total_score: int
    factors: Dict[str, int]
    created_at: datetime

class CarrierWebhook(BaseModel):
    event: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

class RegisterTrackingInput(BaseModel):
    tracking_number: str
    carrier_code: Optional[int] = None
