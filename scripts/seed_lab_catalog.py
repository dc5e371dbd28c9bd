"""
Seed del catálogo de pruebas de laboratorio desde JSON.

Uso:
    python scripts/seed_lab_catalog.py [ruta_json]

Por defecto lee data/lab_catalog.json. Todo el catálogo se valida antes de
escribir: si un solo parámetro es inválido, no se carga nada.
Hace upsert por código de prueba; los parámetros se emparejan por código.
"""

import asyncio
import json
import sys
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import selectinload

# Agregar el directorio raíz al path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.database import async_session_factory, engine  # noqa: E402
from app.lab.catalog import LabCatalog, ParameterDefinition  # noqa: E402
from app.lab.errors import LabError  # noqa: E402
from app.models.lab_test import LabParameter, LabTest  # noqa: E402


JSON_PATH = Path(__file__).resolve().parent.parent / "data" / "lab_catalog.json"

PARAMETER_FIELDS = (
    "name", "code", "unit", "sort_order", "reference_text",
    "ref_min", "ref_max", "critical_min", "critical_max",
)


def _parameter_row(existing: LabParameter | None, param: ParameterDefinition) -> LabParameter:
    row = existing or LabParameter(id=param.id)
    for field in PARAMETER_FIELDS:
        setattr(row, field, getattr(param, field))
    return row


async def seed_lab_catalog(path: Path) -> None:
    """Valida el catálogo completo y hace upsert de cada prueba."""
    if not path.exists():
        print(f"ERROR: No se encontró el archivo {path}")
        sys.exit(1)

    with open(path, encoding="utf-8") as f:
        records = json.load(f)

    try:
        catalog = LabCatalog.from_records(records)
    except LabError as e:
        print(f"ERROR: catálogo inválido, no se cargó nada ({e.code}): {e.detail}")
        sys.exit(1)

    print(f"Leyendo {len(catalog)} pruebas desde {path.name}...")

    async with async_session_factory() as db:
        created = 0
        updated = 0

        for definition in catalog:
            result = await db.execute(
                select(LabTest)
                .where(LabTest.code == definition.code)
                .options(selectinload(LabTest.parameters))
            )
            existing = result.scalar_one_or_none()

            if existing:
                existing.name = definition.name
                existing.category = definition.category
                existing.sample_type = definition.sample_type
                existing.price_minor = definition.price_minor
                existing.duration_hours = definition.duration_hours
                existing.is_active = definition.is_active

                by_code = {p.code: p for p in existing.parameters if p.code}
                existing.parameters = [
                    _parameter_row(by_code.get(p.code) if p.code else None, p)
                    for p in definition.parameters
                ]
                updated += 1
            else:
                db.add(
                    LabTest(
                        code=definition.code,
                        name=definition.name,
                        category=definition.category,
                        sample_type=definition.sample_type,
                        price_minor=definition.price_minor,
                        duration_hours=definition.duration_hours,
                        is_active=definition.is_active,
                        parameters=[_parameter_row(None, p) for p in definition.parameters],
                    )
                )
                created += 1

        await db.commit()
        print(f"Seed completado: {created} creadas, {updated} actualizadas.")

    await engine.dispose()


def main():
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else JSON_PATH
    asyncio.run(seed_lab_catalog(path))


if __name__ == "__main__":
    main()
