import pytest

from huddle.errors import OutputParseError
from huddle.parsing import extract_structured_output, parse_agent_output


def test_extracts_structured_output_block() -> None:
    output = 'Plan below\n```json:structured_output\n{"designComplete": true}\n```'
    assert extract_structured_output(output) == {"designComplete": True}


def test_extracts_bare_object_with_trailing_commas() -> None:
    output = 'Sure! {"apiDesign": ["GET /products",], "ready": true,} thanks'
    assert extract_structured_output(output) == {"apiDesign": ["GET /products"], "ready": True}


def test_raises_when_nothing_parses() -> None:
    with pytest.raises(OutputParseError):
        extract_structured_output("no json here {not: valid")


def test_parse_agent_output_fallback_shape() -> None:
    assert parse_agent_output("frontend-developer", "Working on it") == {
        "message": "Working on it",
        "frontend_developer_complete": False,
    }
