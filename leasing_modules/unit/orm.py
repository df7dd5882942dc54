"""
Module: leasing_modules.unit.orm
Responsibility:
    Persistence for buildings and units.

Invariants enforced:
    - ``occupancy_status`` is changed only by UnitOccupancyService.
    - ``version`` is the mapper's version counter: a stale concurrent
      UPDATE raises StaleDataError, surfaced as OptimisticLockError.
    - (building_id, unit_number) is unique.
    - A unit referenced by any reservation cannot be deleted (ORM listener).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from leasing_kernel.db.base import TrackedBase, UUIDString


class BuildingModel(TrackedBase):
    __tablename__ = "leasing_buildings"

    __table_args__ = (
        Index("idx_building_company", "company_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Tenant-company partition key; visibility filtering happens outside the engine.
    company_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def to_dto(self):
        from leasing_modules.unit.models import Building

        return Building(
            id=self.id,
            name=self.name,
            company_id=self.company_id,
            address=self.address,
        )


class UnitModel(TrackedBase):
    """A leasable unit in a building."""

    __tablename__ = "leasing_units"

    __table_args__ = (
        UniqueConstraint("building_id", "unit_number", name="uq_unit_number"),
        Index("idx_unit_occupancy", "occupancy_status"),
    )

    building_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("leasing_buildings.id"),
        nullable=False,
    )
    unit_number: Mapped[str] = mapped_column(String(50), nullable=False)
    monthly_rate: Mapped[Decimal] = mapped_column(nullable=False)
    occupancy_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="available"
    )
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from leasing_modules.unit.models import OccupancyStatus, Unit

        return Unit(
            id=self.id,
            building_id=self.building_id,
            unit_number=self.unit_number,
            monthly_rate=self.monthly_rate,
            occupancy_status=OccupancyStatus(self.occupancy_status),
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<UnitModel {self.unit_number} ({self.occupancy_status}) v{self.version}>"
