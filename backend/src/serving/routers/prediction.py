from __future__ import annotations

import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from ...market_data import Heatmap, candlesticks_from_records, volume_profile
from ...optical_path import EngineConfig, predict
from ...order_book_momentum import detect_obm

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["prediction"])


class HeatmapBody(BaseModel):
    heatmap: dict[str, Any]


class PredictionBody(BaseModel):
    candlesticks: list[dict[str, Any]]
    heatmap: dict[str, Any]
    path_count: int = Field(default=10, ge=1)
    backend: Optional[Literal["numpy", "torch"]] = None
    include_fields: bool = True


def _engine_config(request: Request) -> EngineConfig:
    return request.app.state.engine_config


def _parse_heatmap(payload: dict[str, Any]) -> Heatmap:
    try:
        return Heatmap.from_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid heatmap: {exc}") from exc


@router.post("/prediction")
async def prediction(body: PredictionBody, request: Request):
    max_paths = request.app.state.settings.max_path_count
    if body.path_count > max_paths:
        raise HTTPException(
            status_code=422,
            detail=f"path_count must be <= {max_paths}, got {body.path_count}",
        )
    heatmap = _parse_heatmap(body.heatmap)
    try:
        candles = candlesticks_from_records(body.candlesticks)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid candlesticks: {exc}") from exc

    config = _engine_config(request)
    if body.backend is not None:
        config = config.model_copy(
            update={"backend": config.backend.model_copy(update={"name": body.backend})}
        )
    result = predict(heatmap, candles, body.path_count, config)
    return result.to_dict(include_fields=body.include_fields)


@router.post("/obm")
async def obm(body: HeatmapBody, request: Request):
    heatmap = _parse_heatmap(body.heatmap)
    return detect_obm(heatmap, _engine_config(request).obm).to_dict()


@router.post("/volume-profile")
async def profile(body: HeatmapBody):
    heatmap = _parse_heatmap(body.heatmap)
    return {"profile": volume_profile(heatmap).to_dict(orient="records")}
