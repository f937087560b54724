# salon_booking/services/catalog/service_catalog.py
"""Directory of bookable services. Booking only needs duration, name and price."""
from dataclasses import dataclass
from decimal import Decimal
from typing import List
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from salon_booking.config.settings import get_settings
from salon_booking.core.exceptions import ValidationError
from salon_booking.models.service import Service


@dataclass(frozen=True)
class ServiceInfo:
    ref: str
    name: str
    duration_minutes: int
    price: Decimal


def _to_info(service: Service) -> ServiceInfo:
    return ServiceInfo(
        ref=service.slug,
        name=service.name,
        duration_minutes=service.duration or get_settings().DEFAULT_SERVICE_DURATION_MINUTES,
        price=Decimal(service.price or 0),
    )


class ServiceCatalog:

    @staticmethod
    def get_service(db: Session, service_ref: str) -> ServiceInfo:
        """Resolve a service by slug or id; inactive or unknown refs are rejected"""
        conditions = [Service.slug == service_ref]
        try:
            conditions.append(Service.id == UUID(str(service_ref)))
        except ValueError:
            pass

        service = db.query(Service).filter(or_(*conditions), Service.is_active.is_(True)).first()
        if not service:
            raise ValidationError(
                f"Unknown service '{service_ref}'",
                code="unknown_service",
                details={"service_ref": service_ref},
            )
        return _to_info(service)

    @staticmethod
    def list_active(db: Session) -> List[ServiceInfo]:
        services = db.query(Service).filter(Service.is_active.is_(True)).order_by(
            Service.display_order.asc(), Service.name.asc()
        ).all()
        return [_to_info(service) for service in services]
