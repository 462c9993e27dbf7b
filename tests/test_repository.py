"""
Tests for BaseRepository construction, chaining and terminal reads.

Writes live in test_mutations.py.
"""

import pytest
from pydantic import ValidationError
from sqlalchemy import inspect as sa_inspect

from datasource.config.settings import Settings
from datasource.core.exceptions import (
    EntityNotFoundError,
    EntityNotResolvableError,
    QueryError,
    UnsupportedOperationError,
)
from datasource.repositories.base import BaseRepository
from datasource.repositories.resolver import STRATEGY_DECLARED, STRATEGY_IMPORT, STRATEGY_NAMESPACE
from datasource.schemas.common import Page
from tests.app.models import Article, Category, Comment, Post
from tests.app.repositories import (
    ArticleRepository,
    CategoriesRepository,
    CommentRepository,
    NoteRepository,
    PostsRepository,
    RemarkRepo,
    WritingRepository,
)


def titles(rows):
    return [row.title for row in rows]


class TestConstruction:
    @pytest.mark.parametrize(
        "repository_class,model,strategy",
        [
            (PostsRepository, Post, STRATEGY_IMPORT),
            (RemarkRepo, Comment, STRATEGY_IMPORT),
            (CategoriesRepository, Category, STRATEGY_NAMESPACE),
            (CommentRepository, Post, STRATEGY_DECLARED),
            (WritingRepository, Article, STRATEGY_DECLARED),
        ],
    )
    def test_model_resolution(self, make_repository, repository_class, model, strategy):
        repo = make_repository(repository_class)

        assert repo.model is model
        assert repo.resolved_by == strategy
        assert repo.is_fresh

    def test_unresolvable_repository_fails_at_construction(self, make_repository):
        with pytest.raises(EntityNotResolvableError):
            make_repository(NoteRepository)

    def test_disabled_auto_resolution(self, make_repository):
        settings = Settings(AUTO_RESOLVE_MODELS=False, _env_file=None)

        with pytest.raises(EntityNotResolvableError):
            make_repository(PostsRepository, settings=settings)
        assert make_repository(WritingRepository, settings=settings).model is Article

    def test_declared_model_hook_can_be_overridden(self, make_repository):
        class AnythingRepository(BaseRepository):
            @classmethod
            def declared_model(cls):
                return Category

        assert make_repository(AnythingRepository).model is Category

    def test_declaration_is_inherited(self, make_repository):
        class DraftWritingRepository(WritingRepository):
            pass

        assert make_repository(DraftWritingRepository).model is Article

    def test_settings_are_read_once(self, make_repository, cached_settings):
        repo = make_repository(PostsRepository, settings=cached_settings)
        cached_settings.CACHE_DURATION = 1

        assert repo.cache.enabled
        assert repo.cache.duration == 60


class TestAll:
    def test_returns_every_row(self, make_repository, posts):
        assert len(make_repository(PostsRepository).all()) == 5

    def test_where_and_order(self, make_repository, posts):
        rows = make_repository(PostsRepository).where({"status": "draft"}).order_by("title", "desc").all()

        assert titles(rows) == ["Draft notes", "500 ways to kick off"]

    def test_operator_conditions(self, make_repository, posts):
        rows = make_repository(PostsRepository).where({"popular": ("views", ">", 100)}).order_by("id").all()

        assert titles(rows) == ["Intro to SQLAlchemy", "Archived"]

    def test_search_matches_literal_percent(self, make_repository, posts):
        rows = make_repository(PostsRepository).search(["title", "body"], "50% off").all()

        # An unescaped "%50% off%" would also match "500 ways to kick off"
        assert titles(rows) == ["50% off everything"]

    def test_search_without_columns_returns_everything(self, make_repository, posts):
        assert len(make_repository(PostsRepository).search([], "nothing").all()) == 5

    def test_when(self, make_repository, posts):
        repo = make_repository(PostsRepository)

        published = repo.when("published", lambda r, _: r.where({"status": "published"})).all()
        everything = repo.when("", lambda r, _: r.where({"status": "published"})).all()

        assert len(published) == 2
        assert len(everything) == 5

    def test_when_callback_may_return_a_statement(self, make_repository, posts):
        rows = make_repository(PostsRepository).when(True, lambda r, s: s.where(Post.views == 0)).all()

        assert titles(rows) == ["Draft notes"]

    def test_limit_offset_filter(self, make_repository, posts):
        rows = make_repository(PostsRepository).filter(Post.views > 1).order_by("id").offset(1).limit(2).all()

        assert titles(rows) == ["50% off everything", "500 ways to kick off"]

    def test_eager_loading(self, make_repository, posts, session):
        session.expunge_all()
        rows = make_repository(PostsRepository).with_("comments").order_by("id").all()

        assert "comments" not in sa_inspect(rows[0]).unloaded
        assert [comment.body for comment in rows[0].comments] == ["Great", "Thanks"]

    def test_selected_columns(self, make_repository, posts, session):
        session.expunge_all()
        rows = make_repository(PostsRepository).order_by("id").all(columns=["title"])

        assert rows[0].title == "Intro to SQLAlchemy"
        assert "body" in sa_inspect(rows[0]).unloaded

    def test_unknown_column_in_selection(self, make_repository, posts):
        with pytest.raises(QueryError):
            make_repository(PostsRepository).all(columns=["nope"])


class TestChainReset:
    def test_terminal_read_resets_the_chain(self, make_repository, posts):
        repo = make_repository(PostsRepository)

        assert len(repo.where({"status": "draft"}).all()) == 2
        assert repo.is_fresh
        assert len(repo.all()) == 5

    @pytest.mark.parametrize(
        "terminal",
        [
            lambda repo: repo.all(),
            lambda repo: repo.paginate(),
            lambda repo: repo.first_where({"status": "draft"}),
        ],
    )
    def test_every_terminal_read_resets(self, make_repository, posts, terminal):
        repo = make_repository(PostsRepository).where({"status": "archived"}).cache_for(30)

        terminal(repo)

        assert repo.is_fresh
        assert repo.chain.cache_ttl is None

    def test_reset_happens_on_failure(self, make_repository, posts):
        repo = make_repository(PostsRepository).where({"status": "draft"})

        with pytest.raises(QueryError):
            repo.all(columns=["nope"])
        assert repo.is_fresh

    def test_query_and_manual_reset(self, make_repository):
        repo = make_repository(PostsRepository).where({"status": "draft"})

        assert "WHERE posts.status" in str(repo.query())
        assert repo.reset() is repo
        assert "WHERE" not in str(repo.query())

    def test_failed_building_call_leaves_state_untouched(self, make_repository):
        repo = make_repository(PostsRepository).where({"status": "draft"})
        before = repo.chain.state

        with pytest.raises(QueryError):
            repo.order_by("nope")
        assert repo.chain.state is before

    def test_direct_lookups_ignore_the_chain(self, make_repository, posts):
        repo = make_repository(PostsRepository).where({"status": "archived"})

        assert repo.find(posts[0].id).title == "Intro to SQLAlchemy"
        assert not repo.is_fresh


class TestPaginate:
    def test_first_page(self, make_repository, posts):
        page = make_repository(PostsRepository).order_by("id").paginate(per_page=2)

        assert isinstance(page, Page)
        assert titles(page.items) == ["Intro to SQLAlchemy", "50% off everything"]
        assert page.pagination.total == 5
        assert page.pagination.total_pages == 3
        assert page.pagination.has_more_pages

    def test_last_page_with_filters(self, make_repository, posts):
        page = make_repository(PostsRepository).where({"status": "draft"}).order_by("id").paginate(per_page=1, page=2)

        assert titles(page.items) == ["Draft notes"]
        assert page.pagination.total == 2
        assert not page.pagination.has_more_pages

    def test_default_per_page(self, make_repository, posts):
        settings = Settings(MODEL_NAMESPACE="tests.app.models", DEFAULT_PER_PAGE=3, _env_file=None)
        page = make_repository(PostsRepository, settings=settings).paginate()

        assert page.pagination.per_page == 3
        assert len(page.items) == 3

    def test_invalid_page(self, make_repository):
        repo = make_repository(PostsRepository).where({"status": "draft"})

        with pytest.raises(QueryError) as exc_info:
            repo.paginate(page=0)

        assert exc_info.value.details == {"page": 0, "per_page": None}
        assert isinstance(exc_info.value.__cause__, ValidationError)
        assert repo.is_fresh


class TestFirstWhere:
    def test_combines_chain_and_conditions(self, make_repository, posts):
        post = make_repository(PostsRepository).where({"status": "published"}).first_where({"views": 40})

        assert post.title == "50% off everything"

    def test_no_match(self, make_repository, posts):
        assert make_repository(PostsRepository).first_where({"status": "missing"}) is None


class TestFind:
    def test_find(self, make_repository, posts):
        repo = make_repository(PostsRepository)

        assert repo.find(posts[1].id) is posts[1]
        assert repo.find(9999) is None

    def test_find_or_fail(self, make_repository, posts):
        with pytest.raises(EntityNotFoundError) as exc_info:
            make_repository(PostsRepository).find_or_fail(9999)

        assert exc_info.value.message == "Post with id '9999' not found"

    def test_trashed_rows_are_hidden(self, make_repository, articles):
        assert make_repository(ArticleRepository).find(articles[2].id) is None


class TestTrashedScopes:
    def test_default_scope(self, make_repository, articles):
        assert [a.slug for a in make_repository(ArticleRepository).order_by("id").all()] == ["first", "second"]

    def test_with_trashed(self, make_repository, articles):
        assert len(make_repository(ArticleRepository).with_trashed().all()) == 3

    def test_only_trashed(self, make_repository, articles):
        assert [a.slug for a in make_repository(ArticleRepository).only_trashed().all()] == ["gone"]

    def test_not_available_without_soft_deletes(self, make_repository):
        with pytest.raises(UnsupportedOperationError):
            make_repository(PostsRepository).with_trashed()


class TestPassthrough:
    def test_select_methods_return_the_repository(self, make_repository, posts):
        repo = make_repository(PostsRepository)

        assert repo.passthrough("where", Post.status == "draft") is repo
        assert len(repo.all()) == 2

    def test_unknown_operation(self, make_repository):
        with pytest.raises(UnsupportedOperationError) as exc_info:
            make_repository(PostsRepository).passthrough("explode")

        assert exc_info.value.message == "PostsRepository.explode does not exist."


class TestCaching:
    def test_disabled_by_default(self, make_repository, posts, store):
        make_repository(PostsRepository).all()

        assert len(store) == 0

    def test_repeated_reads_are_served_from_cache(self, make_repository, cached_settings, posts, session, store):
        repo = make_repository(PostsRepository, settings=cached_settings)
        first = repo.where({"status": "draft"}).all()

        # A row the cached result cannot know about
        session.add(Post(title="Sneaky draft", status="draft"))
        session.flush()

        assert repo.where({"status": "draft"}).all() == first
        assert len(repo.where({"status": "published"}).all()) == 2
        assert len(store) == 2

    def test_cache_for_overrides_disabled_caching(self, make_repository, posts, store):
        repo = make_repository(PostsRepository)

        repo.cache_for(30).all()

        assert len(store) == 1

    def test_runtime_switches(self, make_repository, posts, store):
        repo = make_repository(PostsRepository).cache_results(True).cache_duration(10)

        repo.all()

        assert repo.cache.effective_ttl() == 10
        assert len(store) == 1

    def test_flush_cache(self, make_repository, cached_settings, posts, store):
        repo = make_repository(PostsRepository, settings=cached_settings)
        repo.all()
        repo.paginate(per_page=2)

        repo.flush_cache()

        assert len(store) == 0

    def test_first_where_conditions_are_part_of_the_key(self, make_repository, cached_settings, posts, store):
        repo = make_repository(PostsRepository, settings=cached_settings)

        draft = repo.order_by("id").first_where({"status": "draft"})
        published = repo.order_by("id").first_where({"status": "published"})

        assert draft.title == "500 ways to kick off"
        assert published.title == "Intro to SQLAlchemy"
        assert len(store) == 2

    def test_typed_conditions_get_their_own_entry(self, make_repository, cached_settings, articles, store):
        repo = make_repository(ArticleRepository, settings=cached_settings)
        deleted_at = articles[2].deleted_at

        assert repo.with_trashed().first_where({"deleted_at": deleted_at}).slug == "gone"
        assert repo.with_trashed().first_where({"deleted_at": deleted_at.replace(year=2000)}) is None
        assert len(store) == 2
