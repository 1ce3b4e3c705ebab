"""API v1 routes."""

from fastapi import APIRouter

from keygate.api.v1.endpoints import operator, tokens

api_router = APIRouter()

api_router.include_router(tokens.router, prefix="/tokens", tags=["Tokens"])
api_router.include_router(operator.router, prefix="/operator", tags=["Operator"])
