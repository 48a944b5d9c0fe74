"""Tests for non-fatal FormConfig warnings."""

from __future__ import annotations

from formengine.core.lint import lint_form_config


class TestLint:
    def test_fixture_is_clean(self, call_config) -> None:
        assert lint_form_config(call_config) == []

    def test_last_step_with_members(self, make_config) -> None:
        config = make_config(steps=[{"id": "only", "fields": ["name"]}])
        warnings = lint_form_config(config)
        assert any("Last step 'only' has members" in w for w in warnings)

    def test_unplaced_member(self, config_data, make_config) -> None:
        data = config_data()
        data["fields"].append({"name": "orphan", "type": "text"})
        warnings = lint_form_config(make_config(fields=data["fields"]))
        assert any("'orphan' is not placed" in w for w in warnings)

    def test_create_without_path(self, config_data, make_config) -> None:
        steps = config_data()["steps"]
        steps[0]["relationships"] = ["owner"]
        config = make_config(
            steps=steps,
            relationships=[
                {
                    "name": "owner",
                    "targetEntity": "user",
                    "api": {"listAll": "useGetAllUsers"},
                    "creation": {"canCreate": True},
                }
            ],
        )
        assert any("no createPath" in w for w in lint_form_config(config))

    def test_child_before_parent(self, make_config) -> None:
        config = make_config(
            steps=[
                {"id": "one", "fields": ["name"], "relationships": ["city"]},
                {"id": "two", "relationships": ["state"]},
                {"id": "review"},
            ],
            relationships=[
                {"name": "state", "targetEntity": "state", "api": {"listAll": "x"}},
                {
                    "name": "city",
                    "targetEntity": "city",
                    "api": {"listAll": "y"},
                    "cascadingFilter": {"parentField": "state", "filterField": "state"},
                },
            ],
        )
        assert any("shown before its cascading parent" in w for w in lint_form_config(config))

    def test_drafts_without_persistence(self, make_config) -> None:
        config = make_config(
            behavior={"drafts": {"enabled": True}, "persistence": {"enabled": False}}
        )
        assert any("persistence is off" in w for w in lint_form_config(config))
