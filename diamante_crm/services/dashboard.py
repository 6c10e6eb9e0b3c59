from typing import Any, Dict, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.db.models import Client
from diamante_crm.services.crm import RESOURCES

TOP_CLIENTS = 5


class DashboardService:
    """Summary counters shown on the CRM home page."""

    async def summary(self, session: AsyncSession, agency_id: int) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        for resource in RESOURCES:
            model = resource.model
            res = await session.execute(
                select(func.count()).select_from(model).where(model.agency_id == agency_id)
            )
            counts[resource.name] = int(res.scalar_one())

        res = await session.execute(
            select(Client.id, Client.razao_social, Client.valor_pago)
            .where(Client.agency_id == agency_id)
            .order_by(Client.valor_pago.desc())
            .limit(TOP_CLIENTS)
        )
        top_clients: List[Dict[str, Any]] = [
            {"id": row.id, "razao_social": row.razao_social, "valor_pago": float(row.valor_pago)}
            for row in res.all()
        ]
        return {"counts": counts, "top_clients": top_clients}
