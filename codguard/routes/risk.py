from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import AssessmentOut, ReviewInput, QueueItem
from ..services.risk import assess_order, call_center_queue, get_current_assessment_for_order, review_assessment

router = APIRouter(prefix="/risk-scoring", tags=["risk-scoring"])

@router.post("/assess/{order_id}", response_model=AssessmentOut)
def assess(order_id: int, db: Session = Depends(get_db)):
    return assess_order(db, order_id)

@router.get("/queue", response_model=List[QueueItem])
def queue(db: Session = Depends(get_db)):
    rows = call_center_queue(db)
    return [QueueItem(
        assessment_id=a.id,
        order_id=a.order_id,
        order_number=a.order.order_number,
        customer_name=a.order.customer.name if a.order.customer else None,
        phone=a.order.customer.phone if a.order.customer else None,
        total_items=a.order.total_items,
        total_amount=a.order.total_amount,
        total_score=a.total_score,
        factors=a.factors,
        created_at=a.created_at,
    ) for a in rows]

@router.get("/{order_id}", response_model=AssessmentOut)
def current_assessment(order_id: int, db: Session = Depends(get_db)):
    return get_current_assessment_for_order(db, order_id)

@router.patch("/{assessment_id}/review", response_model=AssessmentOut)
def review(assessment_id: int, payload: ReviewInput, db: Session = Depends(get_db)):
    return review_assessment(db, assessment_id, payload.action_result,
                             payload.review_notes, payload.reviewer_id)
