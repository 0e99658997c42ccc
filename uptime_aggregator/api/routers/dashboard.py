"""
仪表盘 API

暴露刷新协调器发布的派生视图，并提供立即刷新和添加网站入口。
"""

from fastapi import APIRouter, Depends

from ...classifier import summarize
from ...coordinator import RefreshCoordinator
from ...models import AddWebsiteResult, DashboardResponse, WebsiteCreate
from ..dependencies import get_coordinator, get_current_user

router = APIRouter(
    prefix="/api/dashboard",
    tags=["dashboard"],
    dependencies=[Depends(get_current_user)],
)


@router.get("", response_model=DashboardResponse)
async def get_dashboard(coordinator: RefreshCoordinator = Depends(get_coordinator)):
    """
    获取最近一次发布的派生视图

    数据源不可用时返回上一次成功的视图，并在 state.error 中给出错误信息。
    """
    state = coordinator.get_derived_views()
    return DashboardResponse(state=state, summary=summarize(state.views.values()))


@router.post("/refresh", response_model=DashboardResponse)
async def refresh_dashboard(coordinator: RefreshCoordinator = Depends(get_coordinator)):
    """立即刷新（不等待下一个轮询周期）"""
    await coordinator.refresh_now()
    state = coordinator.get_derived_views()
    return DashboardResponse(state=state, summary=summarize(state.views.values()))


@router.post("/websites", response_model=AddWebsiteResult)
async def add_website(
    data: WebsiteCreate,
    coordinator: RefreshCoordinator = Depends(get_coordinator)
):
    """添加网站并立即刷新"""
    success = await coordinator.add_target(data.url, data.name)
    error = None if success else coordinator.get_derived_views().error
    return AddWebsiteResult(success=success, error=error)
