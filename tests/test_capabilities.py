"""
Tests for capability detection.

- Memory cache TTL and project scoping
- Disk cache read/write and version handling
- Git-based staleness
- Discovery response parsing
- memory -> disk -> discovery cascade
"""

import json

import pytest

from featurewarden.agents import AgentResponse
from featurewarden.capabilities import (
    CapabilityResolver,
    MemoryCache,
    format_capabilities,
    invalidate_cache,
    is_stale,
    load_full_cache,
    parse_capability_response,
    save_capabilities,
)
from featurewarden.capabilities.discovery import (
    AgentDiscoveryProvider,
    build_discovery_prompt,
    snapshot_from_response,
)
from featurewarden.capabilities.disk_cache import get_cache_path, load_cached_envelope
from featurewarden.git_utils import GitFacts
from featurewarden.models.capabilities import (
    CACHE_VERSION,
    CapabilitySnapshot,
    DiscoveryResult,
    DiskCacheEnvelope,
    TestCapabilityInfo,
)


HEAD = "a" * 40
OLD = "b" * 40


def make_git(responses=None, head=HEAD):
    """GitFacts over a canned runner; unknown commands fail."""
    table = {("rev-parse", "--is-inside-work-tree"): (0, "true\n", "")}
    if head:
        table[("rev-parse", "HEAD")] = (0, head + "\n", "")
    table.update(responses or {})
    calls = []

    def runner(args, cwd):
        calls.append(list(args))
        return table.get(tuple(args), (128, "", "fatal: unknown"))

    git = GitFacts(runner=runner)
    git.calls = calls
    return git


class FakeProvider:
    def __init__(self, snapshot=None, config_files=None):
        self.snapshot = snapshot or CapabilitySnapshot(
            has_tests=True, test_command="pytest", test_framework="pytest", confidence=0.9,
        )
        self.config_files = config_files or ["pyproject.toml"]
        self.calls = 0

    def discover(self, cwd):
        self.calls += 1
        return DiscoveryResult(capabilities=self.snapshot, config_files=self.config_files)


def write_envelope(project, version=CACHE_VERSION, commit_hash=HEAD, tracked_files=None):
    envelope = DiskCacheEnvelope(
        capabilities=CapabilitySnapshot(has_tests=True, test_command="npm test", confidence=0.7),
        version=version,
        commit_hash=commit_hash,
        tracked_files=tracked_files or [],
    )
    path = get_cache_path(str(project))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(envelope.to_dict()))
    return envelope


class TestMemoryCache:
    """Tests for the single-slot memory cache."""

    def test_hit_within_ttl(self):
        """An entry exactly TTL old is still served."""
        now = [1000]
        cache = MemoryCache(ttl_ms=60000, clock=lambda: now[0])
        snapshot = CapabilitySnapshot(has_tests=True)
        cache.set("/proj", snapshot)

        now[0] = 61000
        assert cache.get("/proj") is snapshot

    def test_miss_after_ttl(self):
        """One millisecond past the TTL is a miss."""
        now = [1000]
        cache = MemoryCache(ttl_ms=60000, clock=lambda: now[0])
        cache.set("/proj", CapabilitySnapshot())

        now[0] = 61001
        assert cache.get("/proj") is None

    def test_other_project_misses(self):
        """The slot belongs to one project path."""
        cache = MemoryCache(clock=lambda: 0)
        cache.set("/a", CapabilitySnapshot())
        assert cache.get("/b") is None

    def test_set_replaces_slot(self):
        """A new project evicts the previous one."""
        cache = MemoryCache(clock=lambda: 0)
        cache.set("/a", CapabilitySnapshot())
        cache.set("/b", CapabilitySnapshot())
        assert cache.get("/a") is None
        assert cache.get("/b") is not None

    def test_clear(self):
        cache = MemoryCache(clock=lambda: 0)
        cache.set("/a", CapabilitySnapshot())
        cache.clear()
        assert cache.get("/a") is None


class TestDiskCache:
    """Tests for ai/capabilities.json."""

    def test_save_and_load(self, tmp_path):
        """Saved envelope records version, commit and tracked files."""
        git = make_git()
        snapshot = CapabilitySnapshot(has_tests=True, test_command="pytest", languages=["python"])

        save_capabilities(str(tmp_path), snapshot, ["pyproject.toml"], git=git)

        data = json.loads((tmp_path / "ai" / "capabilities.json").read_text())
        assert data["version"] == CACHE_VERSION
        assert data["commitHash"] == HEAD
        assert data["trackedFiles"] == ["pyproject.toml"]
        assert data["capabilities"]["testCommand"] == "pytest"

        envelope = load_cached_envelope(str(tmp_path))
        assert envelope.capabilities.test_command == "pytest"
        assert envelope.capabilities.languages == ["python"]

    def test_save_without_commits(self, tmp_path):
        """A repository without HEAD is stored without a hash."""
        save_capabilities(str(tmp_path), CapabilitySnapshot(), [], git=make_git(head=None))
        data = json.loads((tmp_path / "ai" / "capabilities.json").read_text())
        assert "commitHash" not in data

    def test_missing_file(self, tmp_path):
        assert load_full_cache(str(tmp_path)) is None

    def test_corrupt_file(self, tmp_path):
        """Unparsable JSON is treated as absent."""
        (tmp_path / "ai").mkdir()
        (tmp_path / "ai" / "capabilities.json").write_text("{not json")
        assert load_full_cache(str(tmp_path)) is None

    def test_missing_capabilities_object(self, tmp_path):
        (tmp_path / "ai").mkdir()
        (tmp_path / "ai" / "capabilities.json").write_text(json.dumps({"version": CACHE_VERSION}))
        assert load_full_cache(str(tmp_path)) is None

    def test_version_mismatch(self, tmp_path):
        """Other schema versions are readable in full but not as a cache hit."""
        write_envelope(tmp_path, version="0.9.0")
        assert load_full_cache(str(tmp_path)).version == "0.9.0"
        assert load_cached_envelope(str(tmp_path)) is None

    def test_invalidate(self, tmp_path):
        write_envelope(tmp_path)
        invalidate_cache(str(tmp_path))
        assert not (tmp_path / "ai" / "capabilities.json").exists()

    def test_invalidate_missing_file(self, tmp_path):
        """Removing a cache that does not exist is fine."""
        invalidate_cache(str(tmp_path))


class TestStaleness:
    """Tests for git-based staleness."""

    def test_no_commit_hash_is_stale(self, tmp_path):
        envelope = DiskCacheEnvelope(capabilities=CapabilitySnapshot(), commit_hash=None)
        assert is_stale(str(tmp_path), envelope, make_git()) is True

    def test_untracked_same_head_is_fresh(self, tmp_path):
        envelope = DiskCacheEnvelope(capabilities=CapabilitySnapshot(), commit_hash=HEAD)
        assert is_stale(str(tmp_path), envelope, make_git()) is False

    def test_untracked_moved_head_is_stale(self, tmp_path):
        envelope = DiskCacheEnvelope(capabilities=CapabilitySnapshot(), commit_hash=OLD)
        assert is_stale(str(tmp_path), envelope, make_git()) is True

    def test_unresolvable_head_is_stale(self, tmp_path):
        envelope = DiskCacheEnvelope(capabilities=CapabilitySnapshot(), commit_hash=OLD)
        assert is_stale(str(tmp_path), envelope, make_git(head=None)) is True

    def test_tracked_files_unchanged(self, tmp_path):
        """HEAD may move as long as the tracked files did not change."""
        git = make_git({("diff", "--name-only", OLD, "HEAD", "--", "package.json"): (0, "", "")})
        envelope = DiskCacheEnvelope(
            capabilities=CapabilitySnapshot(), commit_hash=OLD, tracked_files=["package.json"]
        )
        assert is_stale(str(tmp_path), envelope, git) is False

    def test_tracked_files_changed(self, tmp_path):
        git = make_git({
            ("diff", "--name-only", OLD, "HEAD", "--", "package.json"): (0, "package.json\n", ""),
        })
        envelope = DiskCacheEnvelope(
            capabilities=CapabilitySnapshot(), commit_hash=OLD, tracked_files=["package.json"]
        )
        assert is_stale(str(tmp_path), envelope, git) is True

    def test_diff_failure_is_stale(self, tmp_path):
        """A diff against a vanished commit means stale."""
        envelope = DiskCacheEnvelope(
            capabilities=CapabilitySnapshot(), commit_hash=OLD, tracked_files=["package.json"]
        )
        assert is_stale(str(tmp_path), envelope, make_git()) is True


class TestDiscoveryParsing:
    """Tests for discovery response parsing."""

    RESPONSE = {
        "languages": ["python"],
        "configFiles": ["pyproject.toml"],
        "packageManager": "pip",
        "test": {"available": True, "command": "pytest", "framework": "pytest", "confidence": 0.9,
                 "selectiveFileTemplate": "pytest {files}"},
        "e2e": {"available": False},
        "lint": {"available": True, "command": "ruff check ."},
        "customRules": [{"id": "docs", "description": "Docs build", "command": "mkdocs build",
                         "type": "weird"}],
    }

    def test_parse_fenced_json(self):
        data, error = parse_capability_response("Here:\n```json\n" + json.dumps(self.RESPONSE) + "\n```")
        assert error is None
        assert data["languages"] == ["python"]

    def test_parse_rejects_missing_languages(self):
        data, error = parse_capability_response(json.dumps({"configFiles": []}))
        assert data is None
        assert "languages" in error

    def test_parse_defaults_config_files(self):
        data, error = parse_capability_response(json.dumps({"languages": ["go"]}))
        assert error is None
        assert data["configFiles"] == []

    def test_parse_invalid_json(self):
        data, error = parse_capability_response("no json here")
        assert data is None
        assert error.startswith("Failed to parse JSON")

    def test_snapshot_from_response(self):
        """Available capabilities without a confidence get 0.8."""
        snapshot = snapshot_from_response(dict(self.RESPONSE), has_git=True)
        assert snapshot.has_tests is True
        assert snapshot.test_command == "pytest"
        assert snapshot.test_info.selective_file_template == "pytest {files}"
        assert snapshot.test_info.package_manager == "pip"
        assert snapshot.has_lint is True
        assert snapshot.lint_info.confidence == pytest.approx(0.8)
        assert snapshot.e2e_info.available is False
        assert snapshot.source == "ai-discovered"
        assert snapshot.has_git is True
        assert snapshot.custom_rules[0].type == "custom"

    def test_overall_confidence_averages_reported_values(self):
        snapshot = snapshot_from_response(dict(self.RESPONSE), has_git=False)
        assert snapshot.confidence == pytest.approx(0.9)

    def test_overall_confidence_default(self):
        snapshot = snapshot_from_response({"languages": []}, has_git=False)
        assert snapshot.confidence == pytest.approx(0.5)

    def test_prompt_mentions_cwd(self):
        prompt = build_discovery_prompt("/work/app")
        assert "/work/app" in prompt
        assert "{files}" in prompt


class TestAgentDiscoveryProvider:
    """Tests for AgentDiscoveryProvider."""

    def test_successful_discovery(self, tmp_path):
        ask_calls = []

        def ask(prompt, timeout_ms, cwd):
            ask_calls.append((timeout_ms, cwd))
            return AgentResponse(success=True, output=json.dumps(TestDiscoveryParsing.RESPONSE),
                                 agent_used="claude")

        provider = AgentDiscoveryProvider(ask=ask, git=make_git(), timeout_ms=1234)
        result = provider.discover(str(tmp_path))

        assert result.capabilities.test_command == "pytest"
        assert result.config_files == ["pyproject.toml"]
        assert ask_calls == [(1234, str(tmp_path))]

    def test_agent_failure_gives_minimal_result(self, tmp_path):
        provider = AgentDiscoveryProvider(
            ask=lambda p, t, c: AgentResponse(success=False, error="No AI agents available or all failed"),
            git=make_git(),
        )
        result = provider.discover(str(tmp_path))
        assert result.capabilities.has_tests is False
        assert result.capabilities.confidence == 0.0
        assert result.config_files == []

    def test_unparsable_answer_gives_minimal_result(self, tmp_path):
        provider = AgentDiscoveryProvider(
            ask=lambda p, t, c: AgentResponse(success=True, output="I could not tell"),
            git=make_git(),
        )
        assert provider.discover(str(tmp_path)).capabilities.has_tests is False

    def test_crashing_agent_gives_minimal_result(self, tmp_path):
        def ask(prompt, timeout_ms, cwd):
            raise RuntimeError("boom")

        provider = AgentDiscoveryProvider(ask=ask, git=make_git())
        assert provider.discover(str(tmp_path)).capabilities.has_tests is False


class TestCapabilityResolver:
    """Tests for the memory -> disk -> discovery cascade."""

    def make_resolver(self, git=None, provider=None, now=None):
        now = now if now is not None else [0]
        return CapabilityResolver(
            memory=MemoryCache(clock=lambda: now[0]),
            git=git or make_git(),
            provider=provider or FakeProvider(),
        )

    def test_discovery_when_nothing_cached(self, tmp_path):
        """Discovery result is persisted to disk and memory."""
        provider = FakeProvider()
        resolver = self.make_resolver(provider=provider)

        caps = resolver.detect(str(tmp_path))

        assert caps.source == "ai-discovered"
        assert provider.calls == 1
        envelope = load_cached_envelope(str(tmp_path))
        assert envelope.commit_hash == HEAD
        assert envelope.tracked_files == ["pyproject.toml"]

    def test_failed_discovery_is_not_written_to_disk(self, tmp_path):
        """A zero-confidence answer is served but not cached on disk."""
        provider = FakeProvider(snapshot=CapabilitySnapshot(confidence=0.0))
        resolver = self.make_resolver(provider=provider)

        caps = resolver.detect(str(tmp_path))

        assert caps.confidence == 0.0
        assert not get_cache_path(str(tmp_path)).exists()

    def test_memory_hit_skips_disk_and_discovery(self, tmp_path):
        provider = FakeProvider()
        resolver = self.make_resolver(provider=provider)
        first = resolver.detect(str(tmp_path))
        get_cache_path(str(tmp_path)).unlink()

        second = resolver.detect(str(tmp_path))

        assert second is first
        assert provider.calls == 1

    def test_fresh_disk_cache_is_served_as_cached(self, tmp_path):
        write_envelope(tmp_path)
        provider = FakeProvider()
        resolver = self.make_resolver(provider=provider)

        caps = resolver.detect(str(tmp_path))

        assert caps.source == "cached"
        assert caps.test_command == "npm test"
        assert provider.calls == 0

    def test_stale_disk_cache_rediscovers(self, tmp_path):
        write_envelope(tmp_path, commit_hash=OLD)
        provider = FakeProvider()

        caps = self.make_resolver(provider=provider).detect(str(tmp_path))

        assert caps.source == "ai-discovered"
        assert provider.calls == 1

    def test_old_schema_version_triggers_discovery(self, tmp_path):
        """A 0.9.0 envelope is ignored and replaced by a fresh discovery."""
        write_envelope(tmp_path, version="0.9.0")
        provider = FakeProvider()

        caps = self.make_resolver(provider=provider).detect(str(tmp_path))

        assert provider.calls == 1
        assert caps.source == "ai-discovered"
        assert caps.test_command == "pytest"
        data = json.loads(get_cache_path(str(tmp_path)).read_text())
        assert data["version"] == CACHE_VERSION

    def test_force_skips_caches(self, tmp_path):
        write_envelope(tmp_path)
        provider = FakeProvider()
        resolver = self.make_resolver(provider=provider)

        caps = resolver.detect(str(tmp_path), force=True)

        assert caps.source == "ai-discovered"
        assert provider.calls == 1

    def test_tiers_order(self):
        resolver = self.make_resolver()
        assert [name for name, _ in resolver.tiers()] == ["memory", "disk", "discovery"]
        assert [name for name, _ in resolver.tiers(force=True)] == ["discovery"]

    def test_expired_memory_falls_back_to_disk(self, tmp_path):
        now = [0]
        provider = FakeProvider()
        git = make_git({("diff", "--name-only", HEAD, "HEAD", "--", "pyproject.toml"): (0, "", "")})
        resolver = self.make_resolver(git=git, provider=provider, now=now)
        resolver.detect(str(tmp_path))

        now[0] = 60001
        caps = resolver.detect(str(tmp_path))

        assert caps.source == "cached"
        assert provider.calls == 1


class TestFormatCapabilities:
    """Tests for the CLI listing."""

    def test_lists_available_and_missing(self):
        caps = CapabilitySnapshot(
            has_tests=True,
            test_command="pytest",
            source="cached",
            confidence=0.9,
            languages=["python"],
            test_info=TestCapabilityInfo(available=True, command="pytest", framework="pytest"),
        )
        text = format_capabilities(caps)
        assert "Source: cached" in text
        assert "Confidence: 90%" in text
        assert "Tests: pytest (pytest)" in text
        assert "E2E: Not detected" in text
        assert "Git: Not available" in text
