"""
FastAPI dependency providers.

Routes receive their services through these functions so that tests can
swap the Supabase client, the model client or the n8n client factory with
``app.dependency_overrides``.
"""
from fastapi import Depends

from .api_clients import LLMClient, N8nClient
from .services.analytics import AnalyticsService
from .services.connections import ConnectionService
from .services.playground import PlaygroundService
from .services.profiles import ProfileService
from .services.usage import UsageService
from .supabase_client import supabase_client
from .workflow.deployer import WorkflowDeployer
from .workflow.generator import WorkflowGenerator


def get_db():
    return supabase_client


def get_llm_client() -> LLMClient:
    return LLMClient()


def get_n8n_client_factory():
    return N8nClient


def get_analytics(db=Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)


def get_usage(db=Depends(get_db)) -> UsageService:
    return UsageService(db)


def get_profiles(db=Depends(get_db)) -> ProfileService:
    return ProfileService(db)


def get_connections(db=Depends(get_db), client_factory=Depends(get_n8n_client_factory)) -> ConnectionService:
    return ConnectionService(db, client_factory)


def get_generator(
    llm_client: LLMClient = Depends(get_llm_client),
    analytics: AnalyticsService = Depends(get_analytics)
) -> WorkflowGenerator:
    return WorkflowGenerator(llm_client, analytics)


def get_deployer(
    connections: ConnectionService = Depends(get_connections),
    analytics: AnalyticsService = Depends(get_analytics)
) -> WorkflowDeployer:
    return WorkflowDeployer(connections, analytics)


def get_playground(
    db=Depends(get_db),
    generator: WorkflowGenerator = Depends(get_generator),
    usage: UsageService = Depends(get_usage),
    analytics: AnalyticsService = Depends(get_analytics),
    connections: ConnectionService = Depends(get_connections)
) -> PlaygroundService:
    return PlaygroundService(db, generator, usage, analytics, connections)
