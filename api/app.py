"""
Meal Calorie Analyzer — FastAPI Backend
"""

import base64
import binascii
import sys
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import uvicorn

from dotenv import load_dotenv
load_dotenv()

from agents.calorie_agent import PipelineSettings, get_calorie_breakdown
from memory.history_service import HistoryItemNotFound, JsonHistoryStore
from tools.gemini_client import ConfigurationError, TextGenerator
from tools.image_parser import prepare_image_upload

API_VERSION = "1.0.0"


# =============================================================================
# PYDANTIC MODELS
# =============================================================================
class AnalyzeJsonRequest(BaseModel):
    """JSON body for clients that already hold a base64 image."""
    image_base64: str = Field(..., min_length=1)
    mime_type: str = "image/jpeg"
    meal_context: str = ""
    user_id: Optional[str] = None
    save_to_history: bool = False


class AnalyzeResponse(BaseModel):
    result: Dict[str, Any]
    history_id: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class HistoryResponse(BaseModel):
    user_id: str
    items: List[Dict[str, Any]]
    count: int


# =============================================================================
# APP SETUP
# =============================================================================
app = FastAPI(
    title="Meal Calorie Analyzer API",
    version=API_VERSION,
    description="Photo-based calorie and macro estimation with multi-sample consensus",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================
def get_text_generator() -> Optional[TextGenerator]:
    """None lets the pipeline build a Gemini client for each request."""
    return None


def get_pipeline_settings() -> Optional[PipelineSettings]:
    """None lets the pipeline read its settings from the environment."""
    return None


@lru_cache(maxsize=1)
def get_history_store() -> JsonHistoryStore:
    return JsonHistoryStore()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================
def decode_base64_image(image_base64: str) -> bytes:
    """Decode a base64 payload, tolerating a data-URL prefix."""
    payload = image_base64.split(",", 1)[1] if image_base64.startswith("data:") else image_base64
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"image_base64 is not valid base64: {e}")


async def run_analysis(
    data: bytes,
    filename: Optional[str],
    content_type: Optional[str],
    meal_context: str,
    user_id: Optional[str],
    save_to_history: bool,
    generator: Optional[TextGenerator],
    settings: Optional[PipelineSettings],
    store: JsonHistoryStore,
) -> AnalyzeResponse:
    """Validate the image, run the pipeline off the event loop, optionally save."""
    prepared = prepare_image_upload(data, filename=filename, content_type=content_type)
    if prepared["status"] != "success":
        raise HTTPException(status_code=400, detail=prepared["error_message"])

    image = prepared["data"]
    result = await run_in_threadpool(
        get_calorie_breakdown,
        image["image_base64"],
        image["mime_type"],
        meal_context or "",
        generator,
        settings,
    )

    history_id = None
    if user_id and save_to_history and not result.get("error"):
        try:
            history_id = store.save(
                user_id=user_id,
                meal_context=meal_context,
                result=result,
                image_base64=image["image_base64"],
            )
        except OSError as e:
            print(f"⚠️ History save failed: {e}")

    return AnalyzeResponse(result=result, history_id=history_id)


# =============================================================================
# ENDPOINTS
# =============================================================================

# -----------------------------------------------------------------------------
# Health & Root
# -----------------------------------------------------------------------------
@app.get("/")
async def root():
    """Root endpoint for health checking."""
    return {
        "status": "online",
        "system": "Meal Calorie Analyzer",
        "version": API_VERSION,
        "docs": "/docs",
    }


@app.get("/api/v1/health")
async def api_health():
    """Detailed health check endpoint."""
    try:
        settings = PipelineSettings.from_env()
        pipeline = {
            "model": settings.model,
            "num_samples": settings.num_samples,
            "food_gate": settings.use_food_gate,
            "model_merge": settings.merge_with_model,
        }
    except ConfigurationError as e:
        pipeline = {"error": str(e)}

    return {
        "status": "online",
        "pipeline": pipeline,
        "timestamp": datetime.now().isoformat(),
    }


# -----------------------------------------------------------------------------
# Meal Analysis (Dual Endpoint for Form and JSON)
# -----------------------------------------------------------------------------
@app.post("/api/v1/meal/analyze", response_model=AnalyzeResponse)
async def analyze_meal_form(
    image: UploadFile = File(...),
    meal_context: str = Form(""),
    user_id: Optional[str] = Form(None),
    save_to_history: bool = Form(False),
    generator: Optional[TextGenerator] = Depends(get_text_generator),
    settings: Optional[PipelineSettings] = Depends(get_pipeline_settings),
    store: JsonHistoryStore = Depends(get_history_store),
):
    """
    Analyze a meal photo sent as multipart form data.
    Use this endpoint for browser uploads.
    """
    data = await image.read()
    return await run_analysis(
        data=data,
        filename=image.filename,
        content_type=image.content_type,
        meal_context=meal_context,
        user_id=user_id,
        save_to_history=save_to_history,
        generator=generator,
        settings=settings,
        store=store,
    )


@app.post("/api/v1/meal/analyze/json", response_model=AnalyzeResponse)
async def analyze_meal_json(
    request: AnalyzeJsonRequest,
    generator: Optional[TextGenerator] = Depends(get_text_generator),
    settings: Optional[PipelineSettings] = Depends(get_pipeline_settings),
    store: JsonHistoryStore = Depends(get_history_store),
):
    """
    Analyze a meal photo sent as base64 in a JSON body.
    """
    return await run_analysis(
        data=decode_base64_image(request.image_base64),
        filename=None,
        content_type=request.mime_type,
        meal_context=request.meal_context,
        user_id=request.user_id,
        save_to_history=request.save_to_history,
        generator=generator,
        settings=settings,
        store=store,
    )


# -----------------------------------------------------------------------------
# History
# -----------------------------------------------------------------------------
@app.get("/api/v1/history", response_model=HistoryResponse)
async def get_history(
    user_id: str = Query(..., min_length=1),
    store: JsonHistoryStore = Depends(get_history_store),
):
    """Saved analyses for a user, newest first."""
    items = store.list(user_id)
    return HistoryResponse(user_id=user_id, items=items, count=len(items))


@app.get("/api/v1/history/{record_id}")
async def get_history_item(
    record_id: str,
    store: JsonHistoryStore = Depends(get_history_store),
):
    try:
        return store.get(record_id)
    except HistoryItemNotFound:
        raise HTTPException(status_code=404, detail=f"History item not found: {record_id}")


@app.delete("/api/v1/history/{record_id}")
async def delete_history_item(
    record_id: str,
    store: JsonHistoryStore = Depends(get_history_store),
):
    try:
        store.delete(record_id)
    except HistoryItemNotFound:
        raise HTTPException(status_code=404, detail=f"History item not found: {record_id}")
    return {"status": "success", "deleted": record_id}


# =============================================================================
# RUN
# =============================================================================
if __name__ == "__main__":
    print("\n" + "=" * 50)
    print(f"🚀 MEAL CALORIE ANALYZER API v{API_VERSION}")
    print("=" * 50)
    print("🔗 API Docs: http://localhost:8000/docs")
    print("=" * 50 + "\n")

    uvicorn.run(app, host="0.0.0.0", port=8000)
