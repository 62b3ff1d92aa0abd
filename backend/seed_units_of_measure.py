#!/usr/bin/env python3
"""
Script to seed the unit catalog and property definitions, and to backfill
properties_normalized on existing products.

Existing records are matched by code / key and updated in place (ids are kept).

Usage: python seed_units_of_measure.py [--execute] [--skip-properties] [--backfill-products]
"""

import asyncio
from motor.motor_asyncio import AsyncIOMotorClient
import argparse
from datetime import datetime, timezone
import uuid

from config import MONGO_URL, DB_NAME
from unit_registry import default_catalog, validate_catalog
from property_metadata import PropertyMetadataResolver
from property_normalization import PropertyNormalizationService

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

PROPERTY_DEFINITIONS = [
    {"key": "pipe_diameter", "label": "Pipe Diameter", "category": "dimension",
     "data_type": "fraction", "unit": "inches", "aliases": ["pipe_size"]},
    {"key": "insulation_thickness", "label": "Insulation Thickness", "category": "dimension",
     "data_type": "fraction", "unit": "inches", "aliases": ["thickness"]},
    {"key": "wall_thickness", "label": "Wall Thickness", "category": "dimension",
     "data_type": "fraction", "unit": "inches"},
    {"key": "width", "label": "Width", "category": "dimension", "data_type": "number", "unit": "inches"},
    {"key": "height", "label": "Height", "category": "dimension", "data_type": "number", "unit": "inches"},
    {"key": "length", "label": "Length", "category": "dimension", "data_type": "number", "unit": "feet"},
    {"key": "gauge", "label": "Gauge", "category": "dimension", "data_type": "number"},
    {"key": "weight", "label": "Weight", "category": "specification", "data_type": "number", "unit": "pounds"},
    {"key": "coverage_area", "label": "Coverage Area", "category": "performance",
     "data_type": "number", "unit": "square feet"},
    {"key": "max_temperature", "label": "Max Service Temperature", "category": "performance",
     "data_type": "number", "unit": "fahrenheit", "aliases": ["temperature_rating"]},
    {"key": "material", "label": "Material", "category": "material", "data_type": "enum"},
    {"key": "facing", "label": "Facing", "category": "material", "data_type": "enum"},
    {"key": "color", "label": "Color", "category": "other", "data_type": "text"},
]


def _now():
    return datetime.now(timezone.utc).isoformat()


async def seed_units(dry_run=True):
    print("=" * 80)
    print("SEEDING UNITS OF MEASURE")
    print("=" * 80)

    records = default_catalog()
    problems = validate_catalog(records)
    if problems:
        for problem in problems:
            print(f"  ❌ {problem}")
        raise RuntimeError("Unit catalog violates the one-base-unit-per-type invariant")

    created = 0
    updated = 0
    for record in records:
        doc = record.model_dump(mode="json")
        existing = await db.units_of_measure.find_one({"code": record.code}, {"_id": 0, "id": 1})
        if existing:
            if not dry_run:
                await db.units_of_measure.update_one(
                    {"code": record.code},
                    {"$set": {**doc, "updated_at": _now()}}
                )
            print(f"  = {record.code:<6} {record.name}: updated")
            updated += 1
        else:
            if not dry_run:
                await db.units_of_measure.insert_one({
                    "id": str(uuid.uuid4()),
                    **doc,
                    "created_at": _now(),
                    "updated_at": _now()
                })
            print(f"  + {record.code:<6} {record.name}: created ({len(record.standard_values)} standard values)")
            created += 1

    if not dry_run:
        await db.units_of_measure.create_index([("code", 1)], unique=True, name="code_unique")
        await db.units_of_measure.create_index([("system", 1)], name="system_idx")
        await db.units_of_measure.create_index([("category", 1)], name="category_idx")
        await db.units_of_measure.create_index([("is_active", 1)], name="is_active_idx")

    print()
    print(f"Summary: {created} created, {updated} updated")


async def seed_property_definitions(dry_run=True):
    print("=" * 80)
    print("SEEDING PROPERTY DEFINITIONS")
    print("=" * 80)

    for definition in PROPERTY_DEFINITIONS:
        doc = {"is_active": True, "unit_system": "imperial", **definition}
        existing = await db.property_definitions.find_one({"key": doc["key"]}, {"_id": 0, "id": 1})
        if not dry_run:
            if existing:
                await db.property_definitions.update_one(
                    {"key": doc["key"]},
                    {"$set": {**doc, "updated_at": _now()}}
                )
            else:
                await db.property_definitions.insert_one({
                    "id": str(uuid.uuid4()),
                    **doc,
                    "created_at": _now(),
                    "updated_at": _now()
                })
        print(f"  {'=' if existing else '+'} {doc['key']} ({doc.get('unit') or 'no unit'})")

    if not dry_run:
        await db.property_definitions.create_index([("key", 1)], unique=True, name="key_unique")
    print()


async def backfill_products(dry_run=True):
    """Recompute properties_normalized for every product (legacy data)"""
    print("=" * 80)
    print("BACKFILLING NORMALIZED PRODUCT PROPERTIES")
    print("=" * 80)

    service = PropertyNormalizationService(PropertyMetadataResolver(db))
    products = await db.products.find({}, {"_id": 0}).to_list(10000)
    print(f"Found {len(products)} product(s)")

    changed = 0
    for product in products:
        before = product.get("properties_normalized")
        await service.normalize_product(product)
        if product["properties_normalized"] == before:
            continue
        changed += 1
        print(f"  ~ {product.get('name', 'Unknown')}: {product['properties_normalized']}")
        if not dry_run:
            update = {
                "properties_normalized": product["properties_normalized"],
                "property_units": product["property_units"],
            }
            if product.get("variants"):
                update["variants"] = product["variants"]
            await db.products.update_one({"id": product["id"]}, {"$set": update})

    if not dry_run:
        await db.products.create_index([("variants.properties_normalized", 1)], name="variants_normalized_idx")
    print()
    print(f"Summary: {changed} product(s) {'would change' if dry_run else 'updated'}")


async def main():
    parser = argparse.ArgumentParser(description='Seed unit catalog and property definitions')
    parser.add_argument('--execute', action='store_true', help='Actually apply changes (default is dry-run)')
    parser.add_argument('--skip-properties', action='store_true', help='Do not seed property definitions')
    parser.add_argument('--backfill-products', action='store_true', help='Recompute properties_normalized on products')

    args = parser.parse_args()
    dry_run = not args.execute

    if dry_run:
        print("⚠️  DRY RUN MODE - No changes will be made")
    else:
        print("✓ LIVE MODE - Changes will be applied")
    print()

    try:
        await seed_units(dry_run=dry_run)
        if not args.skip_properties:
            await seed_property_definitions(dry_run=dry_run)
        if args.backfill_products:
            await backfill_products(dry_run=dry_run)
    except Exception as e:
        print(f"❌ ERROR: {str(e)}")
        import traceback
        traceback.print_exc()
    finally:
        client.close()

if __name__ == "__main__":
    asyncio.run(main())
