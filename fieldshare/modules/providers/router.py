from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, status

from fieldshare.modules.auth.router import get_current_user_id, get_repository
from fieldshare.modules.fields.projection import AccessProjector
from fieldshare.modules.fields.schemas import FieldView
from fieldshare.modules.notifications.notifier import get_notifier
from fieldshare.repository import SqlAlchemyFieldRepository
from . import schemas, services

router = APIRouter(prefix="/service-providers", tags=["Service Providers"])


def get_provider_service(
    background_tasks: BackgroundTasks,
    repository: SqlAlchemyFieldRepository = Depends(get_repository),
) -> services.ServiceProviderAccessService:
    return services.ServiceProviderAccessService(
        repository, notifier=get_notifier(), schedule=background_tasks.add_task
    )


@router.post("/request-access", response_model=schemas.ProviderAccessResponse, status_code=status.HTTP_201_CREATED)
def request_provider_access(
    request: schemas.ProviderAccessRequest,
    user_id: str = Depends(get_current_user_id),
    provider_service: services.ServiceProviderAccessService = Depends(get_provider_service),
):
    """A service provider asks a farmer for access; the farmer gets a text."""
    return provider_service.request_access(service_provider_id=user_id, **request.model_dump())


@router.post("/access", response_model=schemas.ProviderAccessResponse, status_code=status.HTTP_201_CREATED)
def grant_provider_access(
    grant: schemas.ProviderAccessCreate,
    user_id: str = Depends(get_current_user_id),
    provider_service: services.ServiceProviderAccessService = Depends(get_provider_service),
):
    """Farmer grants a co-op, custom applicator or consultant access to their fields."""
    return provider_service.grant_access(farmer_id=user_id, **grant.model_dump())


@router.get("/access", response_model=List[schemas.ProviderAccessResponse])
def get_granted_access(
    user_id: str = Depends(get_current_user_id),
    provider_service: services.ServiceProviderAccessService = Depends(get_provider_service),
):
    return provider_service.list_for_farmer(user_id)


@router.put("/access/{access_id}", response_model=schemas.ProviderAccessResponse)
def update_provider_access(
    access_id: str,
    update: schemas.ProviderAccessStatusUpdate,
    user_id: str = Depends(get_current_user_id),
    provider_service: services.ServiceProviderAccessService = Depends(get_provider_service),
):
    return provider_service.update_status(access_id, update.status, user_id)


@router.get("/clients", response_model=List[schemas.ProviderAccessResponse])
def get_client_grants(
    user_id: str = Depends(get_current_user_id),
    provider_service: services.ServiceProviderAccessService = Depends(get_provider_service),
):
    """Grants farmers have given the calling provider."""
    return provider_service.list_for_provider(user_id)


@router.get("/fields", response_model=List[FieldView])
def get_client_fields(
    user_id: str = Depends(get_current_user_id),
    repository: SqlAlchemyFieldRepository = Depends(get_repository),
):
    return AccessProjector(repository).list_provider_fields(user_id)
