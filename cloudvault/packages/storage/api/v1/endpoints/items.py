"""单个条目的查询与删除路由。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cloudvault.packages.storage.api.v1.schemas.common import AckResponse, ErrorResponse
from cloudvault.packages.storage.api.v1.schemas.items import ItemResponseData
from cloudvault.packages.storage.core.constants import HTTP_STATUS_OK
from cloudvault.packages.storage.core.dependencies import get_db, get_storage_engine, require_credentials
from cloudvault.packages.storage.core.responses import create_response
from cloudvault.packages.storage.services.storage_engine import StorageEngine, serialize_item

router = APIRouter(
    prefix="/items",
    tags=["items"],
    dependencies=[Depends(require_credentials)],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


@router.get("/{item_id}", response_model=ItemResponseData)
def get_item(item_id: str, db: Session = Depends(get_db), engine: StorageEngine = Depends(get_storage_engine)):
    return serialize_item(engine.get_item(db, item_id))


@router.delete("/{item_id}", response_model=AckResponse)
def delete_item(item_id: str, db: Session = Depends(get_db), engine: StorageEngine = Depends(get_storage_engine)):
    """删除文件，或递归删除文件夹及其全部子条目。"""
    removed = engine.delete_item(db, item_id)
    return create_response("删除成功", {"removed_items": removed}, HTTP_STATUS_OK)
