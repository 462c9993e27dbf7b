"""Tests for settings, sessions, exceptions and pagination schemas."""

import logging

import pytest
import structlog
from pydantic import ValidationError
from sqlalchemy import select, text

from datasource.config.settings import Settings
from datasource.core.exceptions import EntityNotFoundError, EntityNotResolvableError
from datasource.core.logging import ROOT_LOGGER_NAME, add_component, build_processors, setup_logging
from datasource.db.session import create_session_factory, run_in_transaction, session_scope
from datasource.models.base import Base, is_entity_type, supports_soft_deletes
from datasource.schemas.common import PaginationMeta
from tests.app.models import Article, Category, Post


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.DEFAULT_PER_PAGE == 15
        assert settings.AUTO_RESOLVE_MODELS is True
        assert settings.MODEL_NAMESPACE == "app.models"
        assert settings.CACHE_RESULTS is False
        assert settings.CACHE_DURATION == 3600
        assert settings.CACHE_PREFIX == "repo"
        assert settings.CACHE_STORE == "memory"
        assert settings.is_development

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("DATASOURCE_CACHE_RESULTS", "true")
        monkeypatch.setenv("DATASOURCE_DEFAULT_PER_PAGE", "50")
        monkeypatch.setenv("DATASOURCE_APP_ENV", "production")

        settings = Settings(_env_file=None)

        assert settings.CACHE_RESULTS is True
        assert settings.DEFAULT_PER_PAGE == 50
        assert settings.is_production

    def test_unknown_cache_store(self):
        with pytest.raises(ValidationError):
            Settings(CACHE_STORE="memcached", _env_file=None)

    def test_per_page_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(DEFAULT_PER_PAGE=0, _env_file=None)


class TestSessionScope:
    @pytest.fixture
    def factory(self):
        factory = create_session_factory("sqlite://")
        Base.metadata.create_all(factory.kw["bind"], tables=[Category.__table__])
        return factory

    def test_commits_on_success(self, factory):
        with session_scope(factory) as session:
            session.add(Category(name="News"))

        with session_scope(factory) as session:
            assert session.scalars(select(Category.name)).all() == ["News"]

    def test_rolls_back_on_error(self, factory):
        with pytest.raises(RuntimeError):
            with session_scope(factory) as session:
                session.add(Category(name="News"))
                session.flush()
                raise RuntimeError("boom")

        with session_scope(factory) as session:
            assert session.scalars(select(Category)).all() == []

    def test_run_in_transaction_returns_result(self, factory):
        with session_scope(factory) as session:
            assert run_in_transaction(session, lambda: session.scalar(text("SELECT 1"))) == 1


class TestLogging:
    @pytest.fixture(autouse=True)
    def restore_level(self):
        level = logging.getLogger(ROOT_LOGGER_NAME).level
        yield
        logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)

    def test_component_comes_from_the_module_name(self):
        event = add_component(None, "debug", {"logger": "datasource.repositories.cache_gate"})

        assert event["component"] == "cache_gate"

    def test_foreign_loggers_get_no_component(self):
        assert "component" not in add_component(None, "info", {"logger": "app.views"})

    @pytest.mark.parametrize(
        "json_logs,renderer",
        [(True, structlog.processors.JSONRenderer), (False, structlog.dev.ConsoleRenderer)],
    )
    def test_renderer(self, json_logs, renderer):
        assert isinstance(build_processors(json_logs)[-1], renderer)

    def test_level_applies_to_the_datasource_tree_only(self):
        root_level = logging.getLogger().level

        setup_logging(level="debug")

        assert logging.getLogger(ROOT_LOGGER_NAME).level == logging.DEBUG
        assert logging.getLogger().level == root_level


class TestModelHelpers:
    def test_is_entity_type(self):
        assert is_entity_type(Post)
        assert not is_entity_type(Post())
        assert not is_entity_type(Base)
        assert not is_entity_type(dict)
        assert not is_entity_type(None)

    def test_supports_soft_deletes(self):
        assert supports_soft_deletes(Article)
        assert not supports_soft_deletes(Post)


class TestExceptions:
    def test_not_found_payload(self):
        assert EntityNotFoundError("Post", 42).to_dict() == {
            "error": {
                "code": "ENTITY_NOT_FOUND",
                "message": "Post with id '42' not found",
                "details": {"entity": "Post", "entity_id": "42"},
            }
        }

    def test_not_resolvable_message_lists_remedies(self):
        error = EntityNotResolvableError(
            "WidgetRepository",
            "Tried names: Widget; Checked imports: Post",
            candidates=["Widget"],
            imports=["Post"],
            model_namespace="shop.models",
        )

        assert error.message.startswith("[WidgetRepository] could not resolve a SQLAlchemy model class.")
        assert "{Model}Repository" in error.message
        assert "shop.models" in error.message
        assert error.message.endswith("Hint: Tried names: Widget; Checked imports: Post")
        assert error.error_code == "ENTITY_NOT_RESOLVABLE"


class TestPaginationMeta:
    @pytest.mark.parametrize(
        "total,per_page,pages",
        [(0, 15, 0), (1, 15, 1), (15, 15, 1), (16, 15, 2)],
    )
    def test_total_pages(self, total, per_page, pages):
        assert PaginationMeta.create(page=1, per_page=per_page, total=total).total_pages == pages
