import pytest

from diamante_crm.core.access_control import (
    ALL_PERMISSIONS,
    AccessPermission,
    AppRole,
    can_access_path,
    can_access_permission,
    get_home_path_for_role,
    get_navigation_for_role,
    get_role_description,
    get_role_label,
    normalize_role,
)
from diamante_crm.core.authorization import resolve_role


@pytest.mark.unit
class TestAccessControl:
    @pytest.mark.parametrize("role", list(AppRole))
    def test_navigation_is_subset_of_all_permissions(self, role):
        navigation = get_navigation_for_role(role)
        assert set(navigation) <= {perm.value for perm in ALL_PERMISSIONS}
        assert navigation == [perm.value for perm in ALL_PERMISSIONS if perm.value in navigation]

    @pytest.mark.parametrize("role", list(AppRole))
    def test_acessos_and_dashboard_only_for_ceo_and_admin(self, role):
        expected = role in (AppRole.CEO, AppRole.ADMIN)
        assert can_access_permission(role, AccessPermission.ACESSOS) is expected
        assert can_access_permission(role, AccessPermission.DASHBOARD) is expected

    def test_home_path(self):
        assert get_home_path_for_role("ceo") == "/"
        assert get_home_path_for_role("financeiro") == "/clientes"
        assert get_home_path_for_role("engenharia") == "/clientes"
        assert get_home_path_for_role("rh") == "/contratos"
        assert get_home_path_for_role("suporte") == "/tarefas"
        assert get_home_path_for_role(None) == "/suporte"

    def test_unknown_paths_are_open(self):
        assert can_access_path("suporte", "/qualquer-coisa")
        assert not can_access_path("suporte", "/obras")
        assert can_access_path("engenharia", "/obras")

    def test_normalize_role(self):
        assert normalize_role(" CEO ") == AppRole.CEO
        assert normalize_role("vendas") == AppRole.VENDAS
        assert normalize_role("gerente") is None
        assert normalize_role(None) is None
        assert not can_access_permission("gerente", AccessPermission.PERFIL)
        assert get_navigation_for_role("gerente") == []

    def test_labels_and_descriptions(self):
        assert get_role_label("admin") == "Administrador"
        assert get_role_label("x") == "Sem perfil"
        assert get_role_description("ceo") == "Acesso completo ao CRM."
        assert get_role_description("admin") == "Acesso total ao sistema."
        assert get_role_description(None) == "Sem permissoes definidas."

    def test_unknown_role_falls_back_to_colaborador(self):
        assert resolve_role("desconhecido") == AppRole.COLABORADOR
