from fastapi import FastAPI, APIRouter, HTTPException, Depends, Query
from starlette.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
import logging
from pydantic import BaseModel
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone

from config import MONGO_URL, DB_NAME, CORS_ORIGINS, PROPERTY_DEFINITION_CACHE_TTL, LOG_LEVEL
from unit_registry import MeasurementType, UnitOfMeasure, UnitRegistry, UnknownUnitError
from unit_normalization import (
    NormalizationStatus,
    compare_values,
    convert_from_base,
    format_value,
    resolve_normalization,
)
from property_metadata import PropertyMetadataResolver
from property_normalization import PropertyNormalizationService
from property_query_builder import InvalidFilterError, PropertyQueryBuilder, parse_filter_param
from query_predicates import merge_into_query

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# MongoDB connection
client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

unit_registry = UnitRegistry()
property_resolver = PropertyMetadataResolver(db, cache_ttl=PROPERTY_DEFINITION_CACHE_TTL)

app = FastAPI(title="Product Property Search")

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
    max_age=600,
)

# ==================== DEPENDENCIES ====================

def get_db():
    return db


def get_unit_registry() -> UnitRegistry:
    return unit_registry


def get_property_resolver():
    return property_resolver

# ==================== HEALTH ENDPOINT (ROOT LEVEL) ====================

@app.get("/api/health")
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "ok": True,
        "time": datetime.now(timezone.utc).isoformat(),
        "service": "Product Property Search API",
        "version": "1.0.0",
        "unit_catalog_loaded": unit_registry.catalog_loaded,
    }

api_router = APIRouter(prefix="/api")

# ==================== MODELS ====================

class ConvertRequest(BaseModel):
    value: float
    from_unit: str
    to_unit: str
    measurement_type: MeasurementType


class ConvertResponse(BaseModel):
    value: Optional[float] = None
    unit: str
    normalized_value: Optional[float] = None
    base_unit: Optional[str] = None
    status: NormalizationStatus
    formatted: str = ""


class CompareRequest(BaseModel):
    value1: float
    unit1: str
    value2: float
    unit2: str
    measurement_type: MeasurementType


class CompareResponse(BaseModel):
    equal: bool

# ==================== UNITS OF MEASURE ====================

@api_router.get("/units-of-measure", response_model=List[UnitOfMeasure])
async def get_units_of_measure(
    system: Optional[str] = None,
    category: Optional[str] = None,
    registry: UnitRegistry = Depends(get_unit_registry)
):
    """Units from the loaded catalog (or the built-in table when no catalog is loaded)"""
    return registry.list_units(system=system, category=category)


@api_router.get("/units-of-measure/categories")
async def get_unit_categories(registry: UnitRegistry = Depends(get_unit_registry)):
    categories = sorted({u.category.value for u in registry.list_units()})
    return {"categories": categories}


@api_router.get("/units-of-measure/{code}", response_model=UnitOfMeasure)
async def get_unit_of_measure(code: str, registry: UnitRegistry = Depends(get_unit_registry)):
    try:
        return registry.get_unit(code)
    except UnknownUnitError as e:
        raise HTTPException(status_code=404, detail=e.message)


@api_router.post("/units/convert", response_model=ConvertResponse)
async def convert_units(data: ConvertRequest):
    """Convert a value between two units of the same measurement type"""
    outcome = resolve_normalization(data.value, data.from_unit, data.measurement_type)
    value = None
    if outcome.value is not None:
        value = convert_from_base(outcome.value, data.to_unit, data.measurement_type)
    return ConvertResponse(
        value=value,
        unit=data.to_unit,
        normalized_value=outcome.value,
        base_unit=outcome.base_unit,
        status=outcome.status,
        formatted=format_value(value, data.to_unit),
    )


@api_router.post("/units/compare", response_model=CompareResponse)
async def compare_units(data: CompareRequest):
    equal = compare_values(data.value1, data.unit1, data.value2, data.unit2, data.measurement_type)
    return CompareResponse(equal=equal)

# ==================== PRODUCTS ====================

@api_router.get("/products")
async def get_products(
    properties: Optional[str] = Query(None, description="JSON object of property filters"),
    category: Optional[str] = None,
    limit: int = Query(500, ge=1, le=5000),
    database=Depends(get_db),
    resolver=Depends(get_property_resolver)
):
    """Products matching all property filters (cross-unit, product or variant level)"""
    try:
        filters = parse_filter_param(properties)
    except InvalidFilterError as e:
        raise HTTPException(status_code=400, detail=e.message)

    query: Dict[str, Any] = {}
    if category:
        query["category"] = category

    property_query = await PropertyQueryBuilder(resolver).build_property_query(filters)
    merge_into_query(query, property_query)

    return await database.products.find(query, {"_id": 0}).to_list(limit)


@api_router.post("/products/{product_id}/normalize-properties")
async def normalize_product_properties(
    product_id: str,
    database=Depends(get_db),
    resolver=Depends(get_property_resolver)
):
    """Recompute properties_normalized / property_units for a product and its variants"""
    product = await database.products.find_one({"id": product_id}, {"_id": 0})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    product = await PropertyNormalizationService(resolver).normalize_product(product)
    update = {
        "properties_normalized": product["properties_normalized"],
        "property_units": product["property_units"],
    }
    if product.get("variants"):
        update["variants"] = product["variants"]
    await database.products.update_one({"id": product_id}, {"$set": update})
    return product


app.include_router(api_router)

# ==================== LIFECYCLE ====================

@app.on_event("startup")
async def startup_event():
    try:
        await unit_registry.load_catalog(db)
    except Exception as e:
        # Conversion math does not need the catalog; serve built-in units
        logger.warning(f"Failed to load unit catalog, using built-in units: {e}")


@app.on_event("shutdown")
async def shutdown_db_client():
    client.close()
