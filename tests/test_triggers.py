from huddle.triggers import PatternTriggerDetector


def test_scan_finds_all_signal_classes() -> None:
    detector = PatternTriggerDetector()
    scan = detector.scan("Let's work together on this, @Maya please check #design")

    assert [rule.name for rule in scan.collaboration] == ["work-together"]
    assert scan.mentions == ["maya"]
    assert scan.tasks == ["design"]
    assert not scan.empty


def test_collaboration_phrases_are_case_insensitive_and_ordered() -> None:
    detector = PatternTriggerDetector()
    scan = detector.scan("I NEED HELP FROM the team, let's Coordinate With design")

    assert [rule.name for rule in scan.collaboration] == ["coordinate", "need-help"]


def test_mentions_accept_hyphenated_handles_and_dedupe() -> None:
    detector = PatternTriggerDetector()
    scan = detector.scan("@frontend-developer and @backend_dev, again @frontend-developer")

    assert scan.mentions == ["frontend-developer", "backend_dev"]


def test_plain_text_is_empty() -> None:
    assert PatternTriggerDetector().scan("hello there").empty


def test_task_tags_route_to_roles() -> None:
    detector = PatternTriggerDetector()

    assert detector.roles_for_task("api") == ["backend-developer"]
    assert detector.roles_for_task("Wireframe") == ["designer"]
    assert detector.roles_for_task("unknown") == []


def test_task_tags_can_be_overridden_from_env(monkeypatch) -> None:
    monkeypatch.setenv("ROLE_DESIGNER_TAGS", "branding, logo")
    detector = PatternTriggerDetector()

    assert detector.roles_for_task("logo") == ["designer"]
    assert detector.roles_for_task("wireframe") == []
