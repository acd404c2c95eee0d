"""
Pydantic schemas for data validation and serialization.

Schemas:
    pipeline: Canonical pipeline config shapes (the config-ingestion boundary)
    vehicle: The ordered vehicle upsert contract
    api: API endpoint request/response schemas

Usage:
    from schemas.pipeline import PipelineConfigCreate, PipelineConfigData
    from schemas.vehicle import VehicleUpsert, UPSERT_FIELDS
    from schemas.api import RunSummary, HistoryResponse

Example:
    # Mixed key casing is normalized on the way in
    mapping = FieldMappingSpec(**{"sourceField": "VIN", "target_field": "vin"})
    assert mapping.source_field == "VIN"
"""
