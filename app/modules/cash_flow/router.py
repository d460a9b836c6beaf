"""
Router FastAPI para el movimiento de caja

Los endpoints de edición dejan el cambio en un borrador sin validar, así se
puede pasar por estados intermedios que no cuadran. `POST /save` valida y
guarda; si no cuadra responde 422 con los motivos y el borrador se conserva.
"""

from fastapi import APIRouter, Body, Path
from typing import Any, Dict, List
from enum import Enum

from app.dependencies.dbDependecies import db_dependency
from app.modules.cash_flow.service import CashFlowService
from app.modules.cash_flow.schemas import (
    Cancellation, CashFlowReplace, CashFlowState, Check, FieldUpdate
)


class Section(str, Enum):
    ENTRIES = "entries"
    EXITS = "exits"


class FieldCategory(str, Enum):
    AMOUNTS = "amounts"
    COUNTS = "counts"
    TEXTS = "texts"
    FLAGS = "flags"


router = APIRouter(prefix="/cash-flow", tags=["Cash Flow"])


@router.get("", response_model=CashFlowState)
async def get_cash_flow(db: db_dependency):
    """
    Movimiento de caja actual con totales y validación.

    Si el registro guardado es de una versión anterior se migra y se
    vuelve a guardar antes de responder.
    """
    return CashFlowService(db).get_state()


@router.put("", response_model=CashFlowState)
async def replace_cash_flow(data: CashFlowReplace, db: db_dependency):
    return CashFlowService(db).replace(data)


@router.post("/preview", response_model=CashFlowState)
async def preview_cash_flow(data: CashFlowReplace, db: db_dependency):
    """Calcula totales y validación sin guardar"""
    return CashFlowService(db).preview(data)


@router.patch("/{section}/{category}/{field}", response_model=CashFlowState)
async def update_field(
    data: FieldUpdate,
    db: db_dependency,
    section: Section = Path(..., description="entries o exits"),
    category: FieldCategory = Path(..., description="amounts, counts, texts o flags"),
    field: str = Path(..., description="Nombre del campo")
):
    """
    Actualizar un campo escalar.

    - **amounts**: valores monetarios (ej. `/entries/amounts/cash`)
    - **counts**: cuotas (ej. `/entries/counts/card_link_installments`)
    - **texts**: textos libres (ej. `/exits/texts/cash_out_reason`)
    - **flags**: indicadores (ej. `/exits/flags/advances_included`)
    """
    return CashFlowService(db).update_field(section.value, category.value, field, data.value)


@router.put("/collections/{collection}", response_model=CashFlowState)
async def replace_collection(
    db: db_dependency,
    collection: str = Path(..., description="Nombre de la colección"),
    items: List[Dict[str, Any]] = Body(...)
):
    return CashFlowService(db).replace_items(collection, items)


@router.post("/collections/{collection}", response_model=CashFlowState)
async def append_to_collection(
    db: db_dependency,
    collection: str = Path(..., description="Nombre de la colección"),
    item: Dict[str, Any] = Body(...)
):
    return CashFlowService(db).append_item(collection, item)


@router.delete("/collections/{collection}/{index}", response_model=CashFlowState)
async def remove_from_collection(
    db: db_dependency,
    collection: str = Path(..., description="Nombre de la colección"),
    index: int = Path(..., ge=0, description="Posición del ítem")
):
    return CashFlowService(db).remove_item(collection, index)


@router.post("/checks", response_model=CashFlowState)
async def add_check(check: Check, db: db_dependency):
    """Agregar cheque; check_total se actualiza junto con la lista"""
    return CashFlowService(db).append_item("checks", check)


@router.delete("/checks/{index}", response_model=CashFlowState)
async def remove_check(db: db_dependency, index: int = Path(..., ge=0)):
    return CashFlowService(db).remove_item("checks", index)


@router.put("/cancellations", response_model=CashFlowState)
async def set_cancellations(cancellations: List[Cancellation], db: db_dependency):
    return CashFlowService(db).set_cancellations(cancellations)


@router.post("/save", response_model=CashFlowState)
async def save_cash_flow(db: db_dependency):
    """
    Guarda el borrador como movimiento de caja.

    - 422 con `reasons` si la salida o el PIX en cuenta no cuadran
    """
    return CashFlowService(db).save()


@router.post("/discard", response_model=CashFlowState)
async def discard_changes(db: db_dependency):
    """Descarta el borrador y vuelve al último movimiento guardado"""
    return CashFlowService(db).discard()


@router.post("/reset", response_model=CashFlowState)
async def reset_cash_flow(db: db_dependency):
    """Vuelve el movimiento a los valores por defecto y borra el registro"""
    return CashFlowService(db).reset()
