from fastapi import Request
from chatgate.services.completion_service import CompletionService

def get_completion_service(request: Request) -> CompletionService:
    return request.app.state.completion_service
