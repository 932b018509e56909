"""Tests for Connecto CLI — proves CLI dispatches correctly."""

import json

import pytest
from pathlib import Path

from connecto.cli import build_parser, main


def _run(tmp_path: Path, *argv: str) -> int:
    return main(["--data-dir", str(tmp_path), *argv])


def _create(tmp_path: Path, capsys) -> str:
    assert _run(
        tmp_path, "create-request", "--customer", "c1", "--customer-name", "Asha",
        "--worker", "w1", "--worker-name", "Ravi", "--problem", "Leaking tap",
        "--budget", "₹500",
    ) == 0
    return json.loads(capsys.readouterr().out)["deal"]["deal_id"]


class TestCLIParsing:
    def test_status_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["status"])
        assert args.command == "status"

    def test_create_request_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args([
            "create-request", "--customer", "c1",
            "--worker", "w1", "--problem", "Leaking tap",
        ])
        assert args.command == "create-request"
        assert args.customer == "c1"
        assert args.location == ""
        assert args.budget is None

    def test_set_status_rejects_new(self) -> None:
        parser = build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args([
                "set-status", "--worker", "w1", "--deal", "deal_1", "--status", "NEW",
            ])

    def test_review_rating_is_int(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["review", "--customer", "c1", "--deal", "d", "--rating", "4"])
        assert args.rating == 4

    def test_global_options(self, tmp_path: Path) -> None:
        parser = build_parser()
        args = parser.parse_args(["--data-dir", str(tmp_path), "-v", "status"])
        assert args.data_dir == tmp_path
        assert args.verbose


class TestCLIExecution:
    def test_status_runs(self, tmp_path: Path, capsys) -> None:
        assert _run(tmp_path, "status") == 0
        status = json.loads(capsys.readouterr().out)
        assert status["deals"]["total"] == 0

    def test_check_invariants_runs(self) -> None:
        assert main(["check-invariants"]) == 0

    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0
        assert "connecto" in capsys.readouterr().out

    def test_deal_lifecycle_e2e(self, tmp_path: Path, capsys) -> None:
        deal_id = _create(tmp_path, capsys)
        assert _run(tmp_path, "set-status", "--worker", "w1", "--deal", deal_id,
                    "--status", "ACCEPTED") == 0
        assert _run(tmp_path, "advance-work", "--worker", "w1", "--deal", deal_id,
                    "--to", "ONGOING") == 0
        assert _run(tmp_path, "advance-work", "--worker", "w1", "--deal", deal_id,
                    "--to", "COMPLETED") == 0
        assert _run(tmp_path, "review", "--customer", "c1", "--deal", deal_id,
                    "--rating", "5") == 0
        capsys.readouterr()

        assert _run(tmp_path, "analytics", "--worker", "w1") == 0
        output = json.loads(capsys.readouterr().out)
        assert output["completed_works"] == 1
        assert output["earnings"]["lifetime"] == 500
        assert output["rating"] == {"average": 5.0, "count": 1}
        assert output["verification"] == "Level 2 - Trusted"

    def test_duplicate_request_fails(self, tmp_path: Path, capsys) -> None:
        _create(tmp_path, capsys)
        assert _run(
            tmp_path, "create-request", "--customer", "c1",
            "--worker", "w1", "--problem", "Again",
        ) == 1
        assert "duplicate_active_request" in capsys.readouterr().err

    def test_suspend_by_admin(self, tmp_path: Path, capsys) -> None:
        assert _run(tmp_path, "suspend", "--admin", "admin-001",
                    "--user", "w1", "--reason", "spam") == 0
        capsys.readouterr()
        assert _run(tmp_path, "status") == 0
        assert json.loads(capsys.readouterr().out)["moderation"]["suspended_users"] == 1

    def test_suspend_by_non_admin_fails(self, tmp_path: Path, capsys) -> None:
        assert _run(tmp_path, "suspend", "--admin", "w9",
                    "--user", "w1", "--reason", "spam") == 1
        assert "not_authorized" in capsys.readouterr().err

    def test_notifications_mark_read(self, tmp_path: Path, capsys) -> None:
        _create(tmp_path, capsys)
        assert _run(tmp_path, "notifications", "--user", "w1", "--mark-read") == 0
        [item] = json.loads(capsys.readouterr().out)
        assert item["type"] == "NEW_REQUEST"
        assert item["read"] is False

        assert _run(tmp_path, "notifications", "--user", "w1") == 0
        [item] = json.loads(capsys.readouterr().out)
        assert item["read"] is True
