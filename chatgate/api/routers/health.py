from fastapi import APIRouter, Depends
from chatgate.api.deps import get_completion_service
from chatgate.services.completion_service import CompletionService

router = APIRouter(tags=["meta"])

@router.get("/health")
def health(service: CompletionService = Depends(get_completion_service)):
    return {"status": "ok", "provider": service.provider.name}
