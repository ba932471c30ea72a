"""Read-only prompt listing for the session picker."""

from typing import Optional

from fastapi import APIRouter, Depends

from agent_console.dependencies import get_prompt_catalog
from agent_console.models.prompts import PromptListResponse
from agent_console.prompts.catalog import PromptCatalog

router = APIRouter()


@router.get("", response_model=PromptListResponse)
async def list_prompts(
    search: Optional[str] = None,
    tag: Optional[str] = None,
    catalog: PromptCatalog = Depends(get_prompt_catalog),
) -> PromptListResponse:
    return PromptListResponse(prompts=catalog.list_prompts(search=search, tag=tag))
