from huddle.triage import ProjectTriager


def test_triage_ecommerce_request() -> None:
    result = ProjectTriager().classify("Build an ecommerce platform with checkout and user login")

    assert result.project_type == "ecommerce"
    assert "payment processing" in result.requirements
    assert "user authentication" in result.requirements


def test_triage_first_matching_type_wins() -> None:
    # "menu" (restaurant) and "blog" both match; restaurant is listed first
    result = ProjectTriager().classify("A blog with a menu of recipes")

    assert result.project_type == "restaurant"


def test_triage_defaults() -> None:
    result = ProjectTriager().classify("Make me something nice")

    assert result.project_type == "website"
    assert result.requirements == ["basic functionality"]


def test_triage_brief() -> None:
    brief = ProjectTriager().classify("portfolio site, must be responsive").to_brief()

    assert brief.name == "portfolio Project"
    assert brief.type == "portfolio"
    assert brief.requirements == ["responsive design"]
    assert brief.status == "planning"
