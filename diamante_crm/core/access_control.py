"""
Role to permission mapping for the CRM.
Pure lookups used both to gate API routes and to build the navigation of
the front-end.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class AppRole(str, Enum):
    """Staff roles."""
    CEO = "ceo"
    FINANCEIRO = "financeiro"
    VENDAS = "vendas"
    RH = "rh"
    ENGENHARIA = "engenharia"
    SUPORTE = "suporte"
    ADMIN = "admin"
    COLABORADOR = "colaborador"


class AccessPermission(str, Enum):
    """CRM areas a role may reach."""
    DASHBOARD = "dashboard"
    CLIENTES = "clientes"
    FORNECEDORES = "fornecedores"
    OBRAS = "obras"
    FUNIL = "funil"
    SIMULADOR = "simulador"
    ASSISTENCIA = "assistencia"
    RDO = "rdo"
    RFIS = "rfis"
    VISTORIAS = "vistorias"
    IMPORTAR = "importar"
    CONTRATOS = "contratos"
    FINANCEIRO = "financeiro"
    TAREFAS = "tarefas"
    ACESSOS = "acessos"
    SUGESTOES = "sugestoes"
    SUPORTE = "suporte"
    PERFIL = "perfil"
    PROGRESSO = "progresso"


ALL_PERMISSIONS: List[AccessPermission] = list(AccessPermission)

SHARED_SUPPORT_PERMISSIONS: List[AccessPermission] = [
    AccessPermission.SUGESTOES,
    AccessPermission.SUPORTE,
    AccessPermission.PERFIL,
]

ROLE_PERMISSIONS: Dict[AppRole, List[AccessPermission]] = {
    AppRole.CEO: ALL_PERMISSIONS,
    AppRole.ADMIN: ALL_PERMISSIONS,
    AppRole.FINANCEIRO: [
        *SHARED_SUPPORT_PERMISSIONS,
        AccessPermission.CLIENTES,
        AccessPermission.FORNECEDORES,
        AccessPermission.FUNIL,
        AccessPermission.IMPORTAR,
        AccessPermission.CONTRATOS,
        AccessPermission.FINANCEIRO,
        AccessPermission.SIMULADOR,
    ],
    AppRole.VENDAS: [
        *SHARED_SUPPORT_PERMISSIONS,
        AccessPermission.CLIENTES,
        AccessPermission.FUNIL,
        AccessPermission.SIMULADOR,
        AccessPermission.IMPORTAR,
        AccessPermission.CONTRATOS,
        AccessPermission.TAREFAS,
    ],
    AppRole.RH: [
        *SHARED_SUPPORT_PERMISSIONS,
        AccessPermission.IMPORTAR,
        AccessPermission.CONTRATOS,
        AccessPermission.TAREFAS,
    ],
    AppRole.ENGENHARIA: [
        *SHARED_SUPPORT_PERMISSIONS,
        AccessPermission.CLIENTES,
        AccessPermission.FORNECEDORES,
        AccessPermission.OBRAS,
        AccessPermission.ASSISTENCIA,
        AccessPermission.RDO,
        AccessPermission.RFIS,
        AccessPermission.VISTORIAS,
        AccessPermission.IMPORTAR,
        AccessPermission.CONTRATOS,
        AccessPermission.TAREFAS,
    ],
    AppRole.SUPORTE: [
        *SHARED_SUPPORT_PERMISSIONS,
        AccessPermission.TAREFAS,
    ],
    AppRole.COLABORADOR: [
        *SHARED_SUPPORT_PERMISSIONS,
        AccessPermission.TAREFAS,
    ],
}

PATH_PERMISSION_MAP: Dict[str, AccessPermission] = {
    "/": AccessPermission.DASHBOARD,
    "/clientes": AccessPermission.CLIENTES,
    "/fornecedores": AccessPermission.FORNECEDORES,
    "/obras": AccessPermission.OBRAS,
    "/funil": AccessPermission.FUNIL,
    "/simulador-caixa": AccessPermission.SIMULADOR,
    "/assistencia": AccessPermission.ASSISTENCIA,
    "/rdo": AccessPermission.RDO,
    "/rfis": AccessPermission.RFIS,
    "/vistorias": AccessPermission.VISTORIAS,
    "/importar": AccessPermission.IMPORTAR,
    "/contratos": AccessPermission.CONTRATOS,
    "/entradas": AccessPermission.FINANCEIRO,
    "/despesas": AccessPermission.FINANCEIRO,
    "/tarefas": AccessPermission.TAREFAS,
    "/acessos": AccessPermission.ACESSOS,
    "/sugestoes": AccessPermission.SUGESTOES,
    "/suporte": AccessPermission.SUPORTE,
    "/portal-cliente": AccessPermission.SUPORTE,
    "/perfil": AccessPermission.PERFIL,
    "/progresso": AccessPermission.PROGRESSO,
}

HOME_PATH_FALLBACKS: List[str] = [
    "/",
    "/clientes",
    "/fornecedores",
    "/obras",
    "/contratos",
    "/tarefas",
    "/suporte",
    "/perfil",
]

DEFAULT_HOME_PATH = "/suporte"

ROLE_LABELS: Dict[AppRole, str] = {
    AppRole.CEO: "CEO",
    AppRole.ADMIN: "Administrador",
    AppRole.FINANCEIRO: "Financeiro",
    AppRole.VENDAS: "Vendas",
    AppRole.RH: "RH",
    AppRole.ENGENHARIA: "Engenharia",
    AppRole.SUPORTE: "Suporte",
    AppRole.COLABORADOR: "Colaborador",
}

ROLE_OPTIONS: List[Dict[str, str]] = [
    {"value": AppRole.CEO.value, "label": "CEO", "description": "Acesso completo ao CRM."},
    {
        "value": AppRole.FINANCEIRO.value,
        "label": "Financeiro",
        "description": "Financeiro, clientes, fornecedores, contratos, importar CSV, funil e simulador CAIXA.",
    },
    {
        "value": AppRole.VENDAS.value,
        "label": "Vendas",
        "description": "Clientes, contratos, tarefas, importar CSV, funil de vendas e simulador CAIXA.",
    },
    {"value": AppRole.RH.value, "label": "RH", "description": "Importar CSV, contratos e tarefas."},
    {
        "value": AppRole.ENGENHARIA.value,
        "label": "Engenharia",
        "description": (
            "Obras, assistencia tecnica, RDO, RFI, vistorias, importar CSV, contratos, "
            "fornecedores, clientes e tarefas."
        ),
    },
    {
        "value": AppRole.SUPORTE.value,
        "label": "Suporte",
        "description": "Atendimento, sugestoes/reclamacoes e tarefas.",
    },
]


def normalize_role(value: Any) -> Optional[AppRole]:
    if isinstance(value, AppRole):
        return value
    if not isinstance(value, str):
        return None
    try:
        return AppRole(value.strip().lower())
    except ValueError:
        return None


def can_access_permission(role: Any, permission: AccessPermission | str) -> bool:
    normalized = normalize_role(role)
    if normalized is None:
        return False
    try:
        wanted = AccessPermission(permission)
    except ValueError:
        return False
    return wanted in ROLE_PERMISSIONS[normalized]


def can_access_path(role: Any, path: str) -> bool:
    """Check a front-end path; paths without a mapped permission are open."""

    permission = PATH_PERMISSION_MAP.get(path or "/")
    if permission is None:
        return True
    return can_access_permission(role, permission)


def get_home_path_for_role(role: Any) -> str:
    for path in HOME_PATH_FALLBACKS:
        if can_access_path(role, path):
            return path
    return DEFAULT_HOME_PATH


def get_navigation_for_role(role: Any) -> List[str]:
    """Permissions held by the role, in the global order."""

    normalized = normalize_role(role)
    if normalized is None:
        return []
    allowed = set(ROLE_PERMISSIONS[normalized])
    return [perm.value for perm in ALL_PERMISSIONS if perm in allowed]


def get_role_label(role: Any) -> str:
    normalized = normalize_role(role)
    if normalized is None:
        return "Sem perfil"
    return ROLE_LABELS[normalized]


def get_role_description(role: Any) -> str:
    normalized = normalize_role(role)
    for option in ROLE_OPTIONS:
        if normalized is not None and option["value"] == normalized.value:
            return option["description"]
    if normalized == AppRole.ADMIN:
        return "Acesso total ao sistema."
    if normalized == AppRole.COLABORADOR:
        return "Acesso a tarefas, suporte e sugestoes/reclamacoes."
    return "Sem permissoes definidas."
