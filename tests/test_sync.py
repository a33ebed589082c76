"""Tests for the push/pull/status sync engine."""

from __future__ import annotations

from pathlib import Path

import pytest

from envsync.codec import decode_secrets, encode_secrets
from envsync.envfile import parse_env_file
from envsync.errors import InvalidVariableNames, NetworkFailure
from envsync.models import Environment, ProjectLink, SecretEntry
from envsync.symmetric import generate_project_key
from envsync.sync import SecretSync, SyncTarget, resolve_targets


@pytest.fixture
def sync(remote, project) -> SecretSync:
    return SecretSync(remote, project.project_id, project.key, max_workers=2)


def _seed(remote, project, env_name: str, **values: str) -> None:
    """Put encrypted variables straight into the fake server."""
    env = project.environments[env_name]
    entries = {k: SecretEntry(value=v) for k, v in values.items()}
    for secret in encode_secrets(entries, list(entries), project.key):
        remote.variables[env.id][secret.key] = secret


def _remote_values(remote, project, env_name: str) -> dict[str, str]:
    env = project.environments[env_name]
    decoded = decode_secrets(remote.variables[env.id].values(), project.key)
    return {k: v.value for k, v in decoded.items()}


class TestPush:
    def test_push_creates_and_updates(self, sync, remote, project, tmp_path: Path) -> None:
        _seed(remote, project, "development", B="3", C="4")
        env_file = tmp_path / ".env"
        env_file.write_text("A=1\nB=2\n")

        result = sync.push(project.environments["development"], env_file)

        assert result.applied
        assert result.diff.creates == ["A"]
        assert result.diff.updates == ["B"]
        assert result.result.created == 1
        assert result.result.updated == 1
        assert _remote_values(remote, project, "development") == {"A": "1", "B": "2", "C": "4"}

    def test_push_with_prune_deletes(self, sync, remote, project, tmp_path: Path) -> None:
        _seed(remote, project, "development", B="3", C="4")
        env_file = tmp_path / ".env"
        env_file.write_text("A=1\nB=2\n")

        sync.push(project.environments["development"], env_file, prune=True)

        assert _remote_values(remote, project, "development") == {"A": "1", "B": "2"}

    def test_noop_push_sends_nothing(self, sync, remote, project, tmp_path: Path) -> None:
        _seed(remote, project, "development", A="1")
        env_file = tmp_path / ".env"
        env_file.write_text("A=1\n")

        result = sync.push(project.environments["development"], env_file, prune=True)

        assert not result.applied
        assert remote.batches == []

    def test_second_push_is_noop(self, sync, remote, project, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("A=1\nB=2\n")
        env = project.environments["development"]
        sync.push(env, env_file)
        sync.push(env, env_file)
        assert len(remote.batches) == 1

    def test_empty_file_never_prunes(self, sync, remote, project, tmp_path: Path) -> None:
        _seed(remote, project, "development", A="1")
        env_file = tmp_path / ".env"
        env_file.write_text("# nothing here\n")

        result = sync.push(project.environments["development"], env_file, prune=True)

        assert not result.applied
        assert _remote_values(remote, project, "development") == {"A": "1"}

    def test_invalid_names_abort_before_any_request(self, sync, remote, project, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("GOOD=1\nbad_name=2\n")

        with pytest.raises(InvalidVariableNames) as exc_info:
            sync.push(project.environments["development"], env_file)

        assert exc_info.value.keys == ["bad_name"]
        assert remote.batches == []

    def test_applies_confirmed_plan(self, sync, remote, project, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("A=1\n")
        env = project.environments["development"]
        plan = sync.plan_push(env, env_file)
        env_file.write_text("A=1\nB=2\n")

        sync.push(env, env_file, plan=plan)

        assert _remote_values(remote, project, "development") == {"A": "1"}

    def test_overwrites_undecryptable_rows(self, sync, remote, project, tmp_path: Path) -> None:
        env = project.environments["development"]
        foreign = encode_secrets({"A": SecretEntry(value="x")}, ["A"], generate_project_key())
        remote.variables[env.id]["A"] = foreign[0]
        env_file = tmp_path / ".env"
        env_file.write_text("A=1\n")

        result = sync.push(env, env_file)

        assert result.repaired == ["A"]
        assert _remote_values(remote, project, "development") == {"A": "1"}

    def test_push_many_reports_per_environment(
        self, sync, remote, project, tmp_path: Path, monkeypatch,
    ) -> None:
        dev_file = tmp_path / ".env"
        dev_file.write_text("A=1\n")
        prod_file = tmp_path / ".env.production"
        prod_file.write_text("A=2\n")
        original = remote.push_batch

        def flaky(project_id, env_id, changes):
            if env_id == project.environments["production"].id:
                raise NetworkFailure("timed out")
            return original(project_id, env_id, changes)

        monkeypatch.setattr(remote, "push_batch", flaky)
        results = sync.push_many([
            SyncTarget(project.environments["development"], dev_file),
            SyncTarget(project.environments["production"], prod_file),
            SyncTarget(project.environments["production"], tmp_path / "missing.env"),
        ])

        assert [(r.env_name, r.applied, r.ok) for r in results] == [
            ("development", True, True),
            ("production", False, False),
            ("production", False, False),
        ]
        assert "timed out" in results[1].error

    def test_push_many_survives_unreadable_file(self, sync, remote, project, tmp_path: Path) -> None:
        """A non-UTF-8 file fails only its own environment."""
        dev_file = tmp_path / ".env"
        dev_file.write_text("A=1\n")
        prod_file = tmp_path / ".env.production"
        prod_file.write_bytes(b"B=\xff\xfe\n")

        results = sync.push_many([
            SyncTarget(project.environments["development"], dev_file),
            SyncTarget(project.environments["production"], prod_file),
        ])

        assert [(r.env_name, r.applied, r.ok) for r in results] == [
            ("development", True, True),
            ("production", False, False),
        ]
        assert "not valid UTF-8" in results[1].error
        assert len(remote.batches) == 1


class TestPull:
    def test_pull_writes_file(self, sync, remote, project, tmp_path: Path) -> None:
        _seed(remote, project, "production", A="1", URL="http://x?a=b#frag")
        target = tmp_path / ".env.production"

        result = sync.pull(project.environments["production"], target)

        assert result.written == 2
        assert result.changes == 2
        parsed = parse_env_file(target)
        assert {k: v.value for k, v in parsed.items()} == {"A": "1", "URL": "http://x?a=b#frag"}

    def test_pull_never_writes_sentinel(self, sync, remote, project, tmp_path: Path) -> None:
        env = project.environments["production"]
        _seed(remote, project, "production", A="1")
        remote.variables[env.id]["B"] = encode_secrets(
            {"B": SecretEntry(value="x")}, ["B"], generate_project_key(),
        )[0]
        remote.variables[env.id]["C"] = encode_secrets(
            {"C": SecretEntry(value="x")}, ["C"], generate_project_key(),
        )[0]
        target = tmp_path / ".env"
        target.write_text("B=keep-me\n")

        result = sync.pull(env, target)

        assert sorted(result.undecryptable) == ["B", "C"]
        text = target.read_text()
        assert "__DECRYPTION_FAILED__" not in text
        values = {k: v.value for k, v in parse_env_file(target).items()}
        assert values == {"A": "1", "B": "keep-me"}


class TestStatus:
    def test_status_many_keyed_by_env(self, sync, remote, project, tmp_path: Path) -> None:
        _seed(remote, project, "development", A="1")
        _seed(remote, project, "production", B="2")
        dev_file = tmp_path / ".env"
        dev_file.write_text("A=1\n")
        prod_file = tmp_path / ".env.production"
        prod_file.write_text("B=3\nC=4\n")

        reports = sync.status_many([
            SyncTarget(project.environments["development"], dev_file),
            SyncTarget(project.environments["production"], prod_file),
        ])

        assert set(reports) == {"development", "production"}
        assert reports["development"].status.is_synced
        assert reports["production"].status.modified == ["B"]
        assert reports["production"].status.local_only == ["C"]

    def test_status_reports_errors_per_env(
        self, sync, remote, project, tmp_path: Path, monkeypatch,
    ) -> None:
        def offline(project_id, env_id):
            raise NetworkFailure("offline")

        monkeypatch.setattr(remote, "list_variables", offline)
        reports = sync.status_many([SyncTarget(project.environments["development"], tmp_path / ".env")])
        assert reports["development"].error == "offline"
        assert reports["development"].status is None

    def test_status_many_survives_unreadable_file(
        self, sync, remote, project, tmp_path: Path,
    ) -> None:
        _seed(remote, project, "development", A="1")
        dev_file = tmp_path / ".env"
        dev_file.write_text("A=1\n")
        prod_file = tmp_path / ".env.production"
        prod_file.write_bytes(b"B=\xff\xfe\n")

        reports = sync.status_many([
            SyncTarget(project.environments["development"], dev_file),
            SyncTarget(project.environments["production"], prod_file),
        ])

        assert reports["development"].status.is_synced
        assert reports["production"].status is None
        assert "not valid UTF-8" in reports["production"].error

    def test_status_directory_in_place_of_file(self, sync, project, tmp_path: Path) -> None:
        (tmp_path / ".env").mkdir()
        report = sync.status(project.environments["development"], tmp_path / ".env")
        assert report.error

    def test_status_never_writes(self, sync, remote, project, tmp_path: Path) -> None:
        dev_file = tmp_path / ".env"
        dev_file.write_text("A=1\n")
        sync.status_many([SyncTarget(project.environments["development"], dev_file)])
        assert remote.batches == []
        assert dev_file.read_text() == "A=1\n"

    def test_status_many_empty(self, sync) -> None:
        assert sync.status_many([]) == {}


class TestResolveTargets:
    def test_case_insensitive_with_missing(self, tmp_path: Path) -> None:
        link = ProjectLink(
            project_id="p",
            project_name="demo",
            mapping={"Development": ".env", "qa": ".env.qa"},
        )
        envs = [Environment(id="e1", name="development"), Environment(id="e2", name="production")]

        targets, missing = resolve_targets(link, envs, tmp_path)

        assert [(t.env_name, t.file_path) for t in targets] == [("development", tmp_path / ".env")]
        assert missing == ["qa"]
