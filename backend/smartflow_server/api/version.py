from typing import Any, Dict

from fastapi import APIRouter, Depends

from smartflow_server.core.api_key import require_shared_api_key
from smartflow_server.core.config import settings

router = APIRouter(tags=["system"], dependencies=[Depends(require_shared_api_key)])


def get_version_payload() -> Dict[str, Any]:
    return {
        'version': settings.version,
        'app': settings.app_name,
        'api_prefix': settings.api_v1_prefix,
    }


@router.get('/version')
async def version():
    return get_version_payload()
