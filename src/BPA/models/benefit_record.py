"""
Typed view over a benefit record fetched from the record store.

The store keeps one flat document per employee, benefit and month, with
Spanish column names. Columns are optional; ``None`` means "unspecified".

Documented columns:

    ======================  ==================  ===============================
    Store column            Attribute           Meaning
    ======================  ==================  ===============================
    Id_usuario              user_id             Employee identifier
    Nombre                  name                Display name
    Beneficio_seleccionado  selected_benefit    Benefit chosen for the month
    Categoria               category            Benefit category
    Mes_de_beneficio        month               Spanish month name
    Estado                  status              Canjeado, Entregado, Pendiente,
                                                No seleccionó
    Inversion               investment          Amount invested
    Devolucion              refund              Amount refunded
    Fecha_de_eleccion       choice_date         DD/MM/YYYY choice date
    Generacion              generation          Generation cohort
    H_M                     gender              H (hombre) / M (mujer)
    Proveedor_beneficio     provider            Benefit provider
    ======================  ==================  ===============================
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.logging_config import get_logger
from .dates import parse_date

logger = get_logger(__name__)

REDEEMED_STATUSES = frozenset({"canjeado", "entregado"})
PENDING_STATUS = "pendiente"
NOT_SELECTED_STATUSES = frozenset({"no seleccionó", "no selecciono"})

Number = Union[int, float]


class BenefitRecord(BaseModel):
    """One employee's benefit selection for one month."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    id: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="Id_usuario")
    name: Optional[str] = Field(default=None, alias="Nombre")
    selected_benefit: Optional[str] = Field(default=None, alias="Beneficio_seleccionado")
    category: Optional[str] = Field(default=None, alias="Categoria")
    month: Optional[str] = Field(default=None, alias="Mes_de_beneficio")
    status: Optional[str] = Field(default=None, alias="Estado")
    investment: Optional[Number] = Field(default=None, alias="Inversion")
    refund: Optional[Number] = Field(default=None, alias="Devolucion")
    choice_date: Optional[str] = Field(default=None, alias="Fecha_de_eleccion")
    generation: Optional[str] = Field(default=None, alias="Generacion")
    gender: Optional[str] = Field(default=None, alias="H_M")
    provider: Optional[str] = Field(default=None, alias="Proveedor_beneficio")

    @field_validator(
        "id", "user_id", "name", "selected_benefit", "category", "month",
        "status", "choice_date", "generation", "gender", "provider",
        mode="before",
    )
    @classmethod
    def _text_or_unspecified(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, (dict, list)):
            return None
        text = str(value).strip()
        return text or None

    @field_validator("investment", "refund", mode="before")
    @classmethod
    def _number_or_unspecified(cls, value: Any) -> Optional[Number]:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return value
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
        if number != number or number in (float("inf"), float("-inf")):
            return None
        return int(number) if number.is_integer() else number

    @classmethod
    def from_store(cls, key: Any, raw: Any) -> Optional["BenefitRecord"]:
        """
        Build a record from a raw store document.

        Args:
            key: Store key of the document
            raw: Decoded document body

        Returns:
            BenefitRecord, or None when the document is not a mapping
        """
        if not isinstance(raw, Mapping):
            return None

        try:
            return cls.model_validate({**raw, "id": key})
        except ValidationError as e:
            logger.warning(f"Skipping malformed benefit record {key}: {e}")
            return None

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def month_key(self) -> Optional[str]:
        """Lower-case month, with "N/A" treated as unspecified."""
        if not self.month or self.month.upper() == "N/A":
            return None
        return self.month.lower()

    @property
    def status_key(self) -> Optional[str]:
        return self.status.lower() if self.status else None

    @property
    def is_redeemed(self) -> bool:
        return self.status_key in REDEEMED_STATUSES

    @property
    def is_pending(self) -> bool:
        return self.status_key == PENDING_STATUS

    @property
    def is_not_selected(self) -> bool:
        return self.status_key in NOT_SELECTED_STATUSES

    @property
    def parsed_choice_date(self) -> Optional[date]:
        return parse_date(self.choice_date)

    @property
    def investment_amount(self) -> Number:
        return self.investment or 0

    @property
    def refund_amount(self) -> Number:
        return self.refund or 0
