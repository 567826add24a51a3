"""
Shared fixtures: a small benefit dataset and in-memory stores.

Reference date for every test is 15/11/2024.
"""

from datetime import date, datetime, timezone

import pytest

from BPA.models.benefit_record import BenefitRecord
from BPA.services.record_store.client import InMemoryRecordStore

TODAY = date(2024, 11, 15)


def _benefit(user_id, name, benefit, category, month, status, investment, refund,
             chosen, generation, gender):
    return {
        "Id_usuario": user_id,
        "Nombre": name,
        "Beneficio_seleccionado": benefit,
        "Categoria": category,
        "Mes_de_beneficio": month,
        "Estado": status,
        "Inversion": investment,
        "Devolucion": refund,
        "Fecha_de_eleccion": chosen,
        "Generacion": generation,
        "H_M": gender,
        "Proveedor_beneficio": "Proveedor A",
    }


BENEFITS = {
    "b1": _benefit("u1", "Ana Torres", "Cena italiana", "Comidas del Mundo", "noviembre",
                   "Canjeado", 100, 0, "05/11/2024", "Millennial", "M"),
    "b2": _benefit("u2", "Bruno Díaz", "Sushi", "Comidas del Mundo", "noviembre",
                   "Pendiente", 200, 0, "10/11/2024", "Gen X", "H"),
    "b3": _benefit("u3", "Carla Ruiz", "Spa", "Bienestar", "noviembre",
                   "Entregado", 150, 50, "15/11/2024", "Millennial", "M"),
    "b4": _benefit("u4", "Diego Paz", "", "Bienestar", "noviembre",
                   "No seleccionó", 0, 0, "N/A", "Gen Z", "H"),
    "b5": _benefit("u1", "Ana Torres", "Concierto", "Experiencias", "diciembre",
                   "Canjeado", 300, 0, "01/12/2023", "Millennial", "M"),
    "b6": _benefit("u2", "Bruno Díaz", "Teatro", "Experiencias", "diciembre",
                   "Canjeado", 250, 0, "02/12/2023", "Gen X", "H"),
    "b7": _benefit("u5", "Elena Soto", "Tapas", "Comidas del Mundo", "diciembre",
                   "Pendiente", 120, 20, "03/12/2023", "Gen Z", "M"),
    "b8": _benefit("u3", "Carla Ruiz", "Yoga", "Bienestar", "octubre",
                   "Canjeado", 80, 0, "20/10/2024", "Millennial", "M"),
    "b9": _benefit("u6", "Fabio Gil", "Café", "Comidas del Mundo", "N/A",
                   "Pendiente", 0, 0, "N/A", "Gen Z", "H"),
}


class FrozenClock:
    """Settable clock for cache TTL tests."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 11, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def benefits():
    return {key: dict(value) for key, value in BENEFITS.items()}


@pytest.fixture
def records(benefits):
    return tuple(BenefitRecord.from_store(key, raw) for key, raw in benefits.items())


@pytest.fixture
def store(benefits):
    """Store with the snapshot root and the nominal collection path populated."""
    return InMemoryRecordStore({"firestore": benefits, "userBenefits": benefits})


@pytest.fixture
def empty_store():
    return InMemoryRecordStore({})


@pytest.fixture
def clock():
    return FrozenClock()
