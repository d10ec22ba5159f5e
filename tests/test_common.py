import pytest

from hausjogja.common import Pagination, create_slug, success


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Menu Haus Panas", "menu-haus-panas"),
        ("  Roti -- Bakar! ", "roti-bakar"),
        ("Boba Brown Sugar (Large)", "boba-brown-sugar-large"),
        ("Es_Teh Manis", "es_teh-manis"),
        ("MILO\tGreen\n Tea", "milo-green-tea"),
        ("!!!", ""),
    ],
)
def test_create_slug(name, expected):
    assert create_slug(name) == expected


@pytest.mark.parametrize("name", ["Menu Haus", "  Roti -- Bakar! ", "Choco-Lava  MILO", "a__b--c"])
def test_create_slug_is_idempotent(name):
    slug = create_slug(name)
    assert create_slug(slug) == slug


def test_names_differing_by_case_and_spacing_share_a_slug():
    assert create_slug("Thai Tea") == create_slug("thai   TEA") == "thai-tea"
    assert create_slug("Thai Tea") != create_slug("Thai Teas")


def test_pagination_second_page_of_fifteen():
    pagination = Pagination(page=2, limit=10)
    assert pagination.offset == 10
    assert pagination.meta(15) == {"page": 2, "limit": 10, "total": 15, "pages": 2}


def test_pagination_empty_set_has_no_pages():
    assert Pagination(page=1, limit=10).meta(0)["pages"] == 0


def test_success_envelope():
    assert success([1], pagination={"page": 1}) == {"status": "success", "data": [1], "pagination": {"page": 1}}
    assert success(message="Category deleted") == {"status": "success", "message": "Category deleted"}
