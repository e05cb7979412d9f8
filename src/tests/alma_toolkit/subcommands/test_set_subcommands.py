#!/usr/bin/env python3
"""
Tests for the subcommands that work through the members of an item set.
"""

import argparse
import csv
from unittest.mock import AsyncMock, MagicMock

import pytest

from alma_toolkit.api import (
    AbortReason,
    AlmaClient,
    AlmaRemoteError,
    AlmaSet,
    BatchItemError,
    BatchReport,
    BatchResult,
    SetMember,
    UserRequest,
)
from alma_toolkit.config import ConfigError
from alma_toolkit.constants import EXIT_ABORTED, EXIT_FAILURE
from alma_toolkit.subcommands import BatchIncompleteError, cancel_requests, item_requests, scan_in
from tests.test_utils.alma_mocks import item_link, member_json, request_json, set_json

CANCEL_ARGS = ["--setid", "1234", "--type", "WORK_ORDER", "--reason", "X"]
SCAN_ARGS = ["--setid", "1234", "--library", "MAIN", "--circdesk", "DESK"]


def parse(module, argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    module.configure(parser)
    return parser.parse_args(argv)


def report_of(values, key, failures=(), not_attempted=0, abort_reason=None) -> BatchReport:
    failures = list(failures)
    return BatchReport(
        submitted=len(values) + len(failures) + not_attempted,
        successes=[BatchResult(key(value), value) for value in values],
        failures=failures,
        not_attempted=not_attempted,
        abort_reason=abort_reason,
    )


def not_found(key: str) -> BatchItemError:
    return BatchItemError(key, AlmaRemoteError(400, "not found", key, code="401652"))


def read_rows(path) -> list[list[str]]:
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


@pytest.fixture
def set_members():
    return [SetMember.from_json(member_json(n)) for n in range(1, 4)]


@pytest.fixture
def user_requests():
    return [
        UserRequest.from_json(request_json("1", "WORK_ORDER", "Binding"), item_link(1)),
        UserRequest.from_json(request_json("2", "HOLD", "PATRON_PHYSICAL"), item_link(1)),
        UserRequest.from_json(request_json("3", "WORK_ORDER", "Binding"), item_link(2)),
    ]


@pytest.fixture
def mock_client(set_members, user_requests):
    """Client whose listing calls return a three-item set with three requests."""
    client = MagicMock(spec=AlmaClient)
    client.resolve_set = AsyncMock(return_value=AlmaSet.from_json(set_json(members=3)))
    client.list_members = AsyncMock(return_value=report_of(set_members, key=lambda member: member.link))
    client.list_user_requests = AsyncMock(
        return_value=BatchReport(
            submitted=3,
            successes=[
                BatchResult(item_link(1), user_requests[:2]),
                BatchResult(item_link(2), user_requests[2:]),
                BatchResult(item_link(3), []),
            ],
        )
    )
    client.cancel_user_requests = AsyncMock(
        side_effect=lambda requests, reason, note="": report_of(list(requests), key=lambda request: request.link)
    )
    client.scan_in_items = AsyncMock(
        side_effect=lambda members, library, circ_desk, department=None: report_of(
            [f"BC{member.id}" for member in members], key=lambda barcode: item_link(int(barcode[4:]))
        )
    )
    return client


class TestCancelRequests:
    @pytest.mark.asyncio
    async def test_dry_run_cancels_nothing(self, mock_client, tmp_path):
        output = tmp_path / "cancel.csv"
        args = parse(cancel_requests, [*CANCEL_ARGS, "--dryrun", "--output", str(output)])

        await cancel_requests.run(args, mock_client)

        mock_client.cancel_user_requests.assert_not_called()
        rows = read_rows(output)
        assert rows[0] == cancel_requests.CSV_HEADER
        assert [row[3] for row in rows[1:]] == ["yes", "no", "yes"]
        assert [row[4] for row in rows[1:]] == ["no", "no", "no"]

    @pytest.mark.asyncio
    async def test_cancels_only_matching_requests(self, mock_client, user_requests, tmp_path):
        output = tmp_path / "cancel.csv"
        args = parse(
            cancel_requests,
            ["--setid", "1234", "--type", "WORK_ORDER", "--subtype", "Binding"]
            + ["--reason", "NotNeeded", "--note", "weeded", "--output", str(output)],
        )

        await cancel_requests.run(args, mock_client)

        mock_client.cancel_user_requests.assert_awaited_once_with(
            [user_requests[0], user_requests[2]], "NotNeeded", "weeded"
        )
        rows = read_rows(output)
        assert rows[1] == [user_requests[0].link, "WORK_ORDER", "Binding", "yes", "yes"]
        assert rows[2] == [user_requests[1].link, "HOLD", "PATRON_PHYSICAL", "no", "no"]
        assert rows[3][4] == "yes"

    @pytest.mark.asyncio
    async def test_partial_failure_exits_with_failure(self, mock_client, user_requests, tmp_path):
        mock_client.cancel_user_requests = AsyncMock(
            return_value=report_of(
                [user_requests[0]], key=lambda request: request.link, failures=[not_found(user_requests[2].link)]
            )
        )
        output = tmp_path / "cancel.csv"
        args = parse(cancel_requests, [*CANCEL_ARGS, "--output", str(output)])

        with pytest.raises(BatchIncompleteError) as exc_info:
            await cancel_requests.run(args, mock_client)

        assert exc_info.value.exit_code == EXIT_FAILURE
        assert "1 error(s) occurred when cancelling requests" in str(exc_info.value)
        # The report is still written before the run is marked incomplete
        rows = read_rows(output)
        assert [row[4] for row in rows[1:]] == ["yes", "no", "no"]

    @pytest.mark.asyncio
    async def test_budget_abort_exits_with_aborted(self, mock_client, user_requests, tmp_path):
        mock_client.cancel_user_requests = AsyncMock(
            return_value=report_of(
                [user_requests[0]],
                key=lambda request: request.link,
                not_attempted=1,
                abort_reason=AbortReason.BUDGET_EXHAUSTED,
            )
        )
        args = parse(cancel_requests, [*CANCEL_ARGS, "--output", str(tmp_path / "c.csv")])

        with pytest.raises(BatchIncompleteError) as exc_info:
            await cancel_requests.run(args, mock_client)

        assert exc_info.value.exit_code == EXIT_ABORTED
        assert "budget exhausted" in str(exc_info.value)
        assert "1 item not attempted" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_rejects_sets_that_are_not_item_sets(self, mock_client):
        mock_client.resolve_set = AsyncMock(return_value=AlmaSet.from_json(set_json(set_type="LOGICAL")))
        args = parse(cancel_requests, CANCEL_ARGS)

        with pytest.raises(ConfigError, match="itemized set of items"):
            await cancel_requests.run(args, mock_client)

        mock_client.list_members.assert_not_called()

    @pytest.mark.parametrize(
        "argv,message",
        [
            (["--type", "WORK_ORDER", "--reason", "X"], "set name or a set ID"),
            (["--setid", "1", "--setname", "S", "--type", "WORK_ORDER", "--reason", "X"], "not both"),
            (["--setid", "1", "--reason", "X"], "request type or a request sub type"),
            (["--setid", "1", "--subtype", "Binding"], "reason is required"),
        ],
    )
    def test_validate(self, argv, message):
        with pytest.raises(ConfigError, match=message):
            cancel_requests.validate(parse(cancel_requests, argv))

    def test_validate_accepts_subtype_only(self):
        args = parse(cancel_requests, ["--setname", "Weeding", "--subtype", "Binding", "--reason", "X"])

        cancel_requests.validate(args)


class TestItemRequests:
    @pytest.mark.asyncio
    async def test_reports_every_request(self, mock_client, tmp_path):
        output = tmp_path / "requests.csv"
        args = parse(item_requests, ["--setname", "Weeding 2024", "--output", str(output)])

        await item_requests.run(args, mock_client)

        mock_client.resolve_set.assert_awaited_once_with(name="Weeding 2024", set_id=None)
        rows = read_rows(output)
        assert rows[0] == item_requests.CSV_HEADER
        assert [row[1] for row in rows[1:]] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_failed_member_listing_is_reported(self, mock_client, set_members, tmp_path):
        mock_client.list_members = AsyncMock(
            return_value=BatchReport(
                submitted=1,
                successes=[BatchResult(set_members[0].link, set_members[0])],
                failures=[not_found("set member page offset 100")],
                pages_remaining=2,
            )
        )
        args = parse(item_requests, ["--setid", "1234", "--output", str(tmp_path / "r.csv")])

        with pytest.raises(BatchIncompleteError) as exc_info:
            await item_requests.run(args, mock_client)

        assert exc_info.value.exit_code == EXIT_FAILURE
        mock_client.list_user_requests.assert_awaited_once_with([set_members[0]])


class TestScanIn:
    @pytest.mark.asyncio
    async def test_scans_in_every_member(self, mock_client, set_members, tmp_path):
        output = tmp_path / "scan.csv"
        args = parse(scan_in, [*SCAN_ARGS, "--output", str(output)])

        await scan_in.run(args, mock_client)

        mock_client.scan_in_items.assert_awaited_once_with(set_members, "MAIN", "DESK", None)
        rows = read_rows(output)
        assert rows[1] == [item_link(1), "Item 1", "BC231", "yes"]
        assert [row[3] for row in rows[1:]] == ["yes", "yes", "yes"]

    @pytest.mark.asyncio
    async def test_cancelled_run_exits_with_aborted(self, mock_client, set_members, tmp_path):
        mock_client.scan_in_items = AsyncMock(
            return_value=report_of(
                ["BC231"],
                key=lambda barcode: item_link(1),
                not_attempted=2,
                abort_reason=AbortReason.CANCELLED,
            )
        )
        output = tmp_path / "scan.csv"
        args = parse(scan_in, [*SCAN_ARGS, "--output", str(output)])

        with pytest.raises(BatchIncompleteError) as exc_info:
            await scan_in.run(args, mock_client)

        assert exc_info.value.exit_code == EXIT_ABORTED
        assert "cancelled" in str(exc_info.value)
        assert [row[3] for row in read_rows(output)[1:]] == ["yes", "no", "no"]

    @pytest.mark.asyncio
    async def test_dry_run(self, mock_client, tmp_path):
        output = tmp_path / "scan.csv"
        args = parse(scan_in, [*SCAN_ARGS, "--dryrun", "--output", str(output)])

        await scan_in.run(args, mock_client)

        mock_client.scan_in_items.assert_not_called()
        assert [row[3] for row in read_rows(output)[1:]] == ["no", "no", "no"]

    @pytest.mark.parametrize(
        "argv,message",
        [
            (["--setid", "1", "--circdesk", "DESK"], "library code"),
            (["--setid", "1", "--library", "MAIN"], "circulation desk"),
        ],
    )
    def test_validate(self, argv, message):
        with pytest.raises(ConfigError, match=message):
            scan_in.validate(parse(scan_in, argv))
