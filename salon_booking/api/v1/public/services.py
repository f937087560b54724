# salon_booking/api/v1/public/services.py
from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from salon_booking.config.database import get_db
from salon_booking.schemas.services import ServiceResponse
from salon_booking.services.catalog.service_catalog import ServiceCatalog

router = APIRouter(prefix="/services", tags=["public-services"])


@router.get("", response_model=List[ServiceResponse])
def list_services(db: Session = Depends(get_db)):
    """Active services, in display order"""
    return [ServiceResponse(**asdict(service)) for service in ServiceCatalog.list_active(db)]
