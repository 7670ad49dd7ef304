"""
Tests for treasury_config: YAML loading, checksums, bridges, settings,
and template seeding from a configuration set.
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from treasury_config import DEFAULT_CONFIG_DIR, TreasurySettings, get_active_config
from treasury_config.bridges import (
    build_capability_grants,
    build_step_definitions,
    template_bounds,
)
from treasury_config.loader import compute_checksum, load_configuration_set, parse_template
from treasury_kernel.domain.approval import ApprovalLevel
from treasury_kernel.domain.roles import Capability, Role
from treasury_kernel.exceptions import InvalidTemplateError
from treasury_kernel.models.directory import DepartmentModel
from treasury_services.template_seeding import seed_templates


def write_config(directory: Path, templates: list[dict], grants: dict | None = None) -> Path:
    (directory / "approval_templates.yaml").write_text(
        yaml.safe_dump({"config_id": "TEST", "version": 2, "templates": templates})
    )
    (directory / "access.yaml").write_text(yaml.safe_dump({"grants": grants or {}}))
    return directory


def template_doc(name="T", **extra) -> dict:
    doc = {
        "name": name,
        "steps": [{"role": "department_treasurer", "step_order": 1}],
    }
    doc.update(extra)
    return doc


class TestPackagedDefaults:

    def test_loads(self):
        config = get_active_config()

        assert config.config_id == "CHURCH-TREASURY-DEFAULT"
        assert [t.name for t in config.templates] == [
            "Standard request", "Elevated request", "Major expenditure",
        ]
        assert sum(t.is_default for t in config.templates) == 1

    def test_tiers_do_not_overlap(self):
        config = get_active_config()
        bounds = [template_bounds(t) for t in config.templates]

        assert bounds == [
            (Decimal("0"), Decimal("1000.00")),
            (Decimal("1000.01"), Decimal("5000.00")),
            (Decimal("5000.01"), None),
        ]

    def test_major_expenditure_goes_to_pastor(self):
        config = get_active_config()
        major = build_step_definitions(config.templates[-1])

        assert [s.role for s in major] == [
            ApprovalLevel.DEPARTMENT_TREASURER,
            ApprovalLevel.HEAD_OF_DEPARTMENT,
            ApprovalLevel.FINANCE_ELDER,
            ApprovalLevel.GENERAL_SECRETARY,
            ApprovalLevel.PASTOR,
        ]

    def test_grants(self):
        grants = build_capability_grants(get_active_config())

        assert grants[Role.ADMINISTRATOR] == frozenset(Capability)
        assert Capability.APPROVE_ANY_LEVEL not in grants[Role.FINANCE_MANAGER]
        assert Role.DEPARTMENT_MEMBER not in grants

    def test_emits_config_trace(self, captured_logs):
        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "TREASURY_CONFIG_TRACE"]
        assert traces[-1]["checksum"] == config.checksum


class TestLoader:

    def test_custom_directory(self, tmp_path):
        write_config(
            tmp_path,
            [template_doc("Only", department="Music", min_amount="10", is_default=True)],
            {"pastor": ["view_all_requests"]},
        )

        config = load_configuration_set(tmp_path)

        assert config.config_id == "TEST"
        assert config.version == 2
        (only,) = config.templates
        assert only.department == "Music"
        assert only.min_amount == "10"
        assert only.steps[0].timeout_hours == 72
        assert config.access.grants[0].role == "pastor"

    def test_float_amount_refused(self):
        with pytest.raises(ValueError, match="quoted"):
            parse_template(template_doc(min_amount=10.5))

    def test_template_without_steps_refused(self):
        with pytest.raises(ValueError, match="no steps"):
            parse_template({"name": "empty", "steps": []})

    def test_two_defaults_refused(self, tmp_path):
        write_config(
            tmp_path,
            [template_doc("A", is_default=True), template_doc("B", is_default=True)],
        )
        with pytest.raises(ValueError, match="More than one default"):
            load_configuration_set(tmp_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_configuration_set(tmp_path)

    def test_checksum_is_deterministic(self):
        a = compute_checksum({"b": 1, "a": [1, 2]})
        b = compute_checksum({"a": [1, 2], "b": 1})
        assert a == b
        assert a != compute_checksum({"a": [2, 1], "b": 1})

    def test_unknown_role_in_bridge(self, tmp_path):
        doc = template_doc()
        doc["steps"][0]["role"] = "choir_director"
        with pytest.raises(ValueError):
            build_step_definitions(parse_template(doc))


class TestSettings:

    def test_defaults(self):
        settings = TreasurySettings.from_env({})

        assert settings.database_url == "sqlite://"
        assert not settings.db_echo
        assert settings.db_pool_size == 20
        assert settings.config_dir == DEFAULT_CONFIG_DIR
        assert not settings.is_postgres

    def test_from_environment(self, tmp_path):
        settings = TreasurySettings.from_env({
            "TREASURY_DATABASE_URL": "postgresql+psycopg://u:p@db/treasury",
            "TREASURY_DB_ECHO": "yes",
            "TREASURY_DB_POOL_SIZE": "5",
            "TREASURY_LOG_LEVEL": "debug",
            "TREASURY_CONFIG_DIR": str(tmp_path),
        })

        assert settings.is_postgres
        assert settings.db_echo
        assert settings.db_pool_size == 5
        assert settings.log_level == "DEBUG"
        assert settings.config_dir == tmp_path

    @pytest.mark.parametrize("value", ["0", "-3"])
    def test_pool_size_must_be_positive(self, value):
        with pytest.raises(ValueError):
            TreasurySettings.from_env({"TREASURY_DB_POOL_SIZE": value})


class TestSeedTemplates:

    def test_seeds_packaged_defaults_once(self, session, template_service):
        config = get_active_config()

        created = seed_templates(session, config)
        again = seed_templates(session, config)

        assert len(created) == 3
        assert again == []
        active = template_service.list_active_templates()
        assert sorted(t.name for t in active) == sorted(t.name for t in config.templates)
        assert [t.name for t in active if t.is_default] == ["Standard request"]

    def test_seed_run_logged_with_count(self, session, captured_logs):
        config = get_active_config()

        seed_templates(session, config)

        (record,) = [r for r in captured_logs() if r["message"] == "templates_seeded"]
        assert record["templates_created"] == 3
        assert record["config_id"] == config.config_id

    def test_resolves_department_names(self, session, tmp_path, department_id):
        session.add(DepartmentModel(id=department_id, name="Music"))
        session.flush()
        config = load_configuration_set(
            write_config(tmp_path, [template_doc("Music only", department="Music")])
        )

        (template,) = seed_templates(session, config)

        assert template.department_id == department_id

    def test_unknown_department(self, session, tmp_path):
        config = load_configuration_set(
            write_config(tmp_path, [template_doc("Ghost", department="Nowhere")])
        )
        with pytest.raises(InvalidTemplateError, match="Unknown department"):
            seed_templates(session, config)
