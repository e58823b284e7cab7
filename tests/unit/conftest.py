import pytest

from hemicycle.services.taxonomy import TaxonomyReconciler, ThemeNode

THEME_NODES = [
    ThemeNode(id="institutions", name="Institutions"),
    ThemeNode(id="politique-generale", name="Politique générale", parent_id="institutions"),
    ThemeNode(id="economie", name="Économie"),
    ThemeNode(
        id="agriculture",
        name="Agriculture",
        parent_id="economie",
        aliases=frozenset({"Agriculture et pêche"}),
    ),
    ThemeNode(
        id="budget",
        name="Budget",
        parent_id="economie",
        aliases=frozenset({"Finances publiques"}),
        short_name="Finances",
    ),
]


@pytest.fixture
def theme_nodes() -> list[ThemeNode]:
    return list(THEME_NODES)


@pytest.fixture
def reconciler(theme_nodes: list[ThemeNode]) -> TaxonomyReconciler:
    return TaxonomyReconciler(theme_nodes, max_label_length=55)
