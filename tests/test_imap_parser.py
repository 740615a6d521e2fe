"""Tests for IMAP response and MIME parsing."""

from datetime import datetime, timezone

import pytest

from conftest import fetch_lines, make_raw_email

from ectt.core.message import EPOCH
from ectt.imap.parser import (
    fetch_window,
    group_fetch_lines,
    parse_email,
    parse_fetch_response,
    parse_internaldate,
    parse_search_response,
)


class TestFetchWindow:
    def test_first_page(self):
        assert fetch_window(max_uid=100, count=5, offset=0) == (95, 100)

    def test_second_page(self):
        assert fetch_window(max_uid=100, count=5, offset=5) == (90, 95)

    def test_window_clamps_at_one(self):
        assert fetch_window(max_uid=3, count=5, offset=0) == (1, 3)

    @pytest.mark.parametrize("offset", [10, 11, 500])
    def test_offset_past_max_uid_collapses(self, offset):
        assert fetch_window(max_uid=10, count=5, offset=offset) == (1, 1)

    def test_empty_mailbox(self):
        assert fetch_window(max_uid=1, count=5, offset=0) == (1, 1)


class TestSearch:
    def test_uids_are_collected(self):
        assert parse_search_response([b"1 2 3 40", b"SEARCH completed (0.001 secs)."]) == [1, 2, 3, 40]

    def test_search_prefix_is_dropped(self):
        assert parse_search_response(["SEARCH 7 8", "OK"]) == [7, 8]

    def test_empty_result(self):
        assert parse_search_response([b"", b"SEARCH completed"]) == []


class TestFetch:
    def test_groups_one_entry_per_message(self):
        lines = fetch_lines(
            [(4, make_raw_email(subject="a")), (5, make_raw_email(subject="b"))],
            internaldate="17-Jul-2024 02:44:25 -0700",
        )
        fetched = group_fetch_lines(lines)

        assert [f.uid for f in fetched] == [4, 5]
        assert fetched[0].internal_date == datetime(2024, 7, 17, 9, 44, 25, tzinfo=timezone.utc)
        assert b"Subject: a" in fetched[0].raw

    def test_uid_after_the_literal(self):
        raw = make_raw_email()
        lines = [
            f"1 FETCH (RFC822 {{{len(raw)}}}".encode(),
            bytearray(raw),
            b' UID 9 INTERNALDATE "01-Feb-2024 10:00:00 +0000")',
        ]
        [fetched] = group_fetch_lines(lines)

        assert fetched.uid == 9
        assert fetched.internal_date == datetime(2024, 2, 1, 10, 0, tzinfo=timezone.utc)

    def test_body_mentioning_uid_does_not_confuse_parser(self):
        raw = make_raw_email(body="see UID 12345 for details")
        [email] = parse_fetch_response(fetch_lines([(3, raw)]))

        assert email.uid == 3

    def test_bodyless_message_is_skipped(self):
        lines = [b"1 FETCH (UID 2)", b"Fetch completed."]
        assert parse_fetch_response(lines) == []

    def test_bad_message_does_not_abort_batch(self):
        lines = fetch_lines([(1, b"\r\n"), (2, make_raw_email(subject="fine"))])
        emails = parse_fetch_response(lines)

        assert [e.subject for e in emails] == ["fine"]


class TestInternalDate:
    def test_space_padded_day(self):
        assert parse_internaldate(" 7-Jan-2024 08:00:00 +0100") == datetime(
            2024, 1, 7, 7, 0, tzinfo=timezone.utc
        )

    def test_garbage(self):
        assert parse_internaldate("yesterday") is None

    @pytest.mark.parametrize(
        "value",
        ["15-Foo-2024 10:00:00 +0000", "30-Feb-2024 10:00:00 +0000", "15-Jan-2024 25:00:00 +0000"],
    )
    def test_impossible_dates(self, value):
        assert parse_internaldate(value) is None

    def test_malformed_internaldate_falls_back_to_header(self):
        lines = fetch_lines([(3, make_raw_email())], internaldate="30-Feb-2024 10:00:00 +0000")

        [email] = parse_fetch_response(lines)

        assert email.date == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


class TestParseEmail:
    def test_fields(self):
        raw = make_raw_email(extra_headers="Cc: Ann <ann@example.com>, bob@example.com")
        email = parse_email(7, raw)

        assert email.uid == 7
        assert email.from_ == "Test Sender (sender@example.com)"
        assert email.cc == ["Ann (ann@example.com)", "bob@example.com"]
        assert email.bcc == []
        assert email.subject == "Test Subject"
        assert email.body.strip() == "This is a test email body."

    def test_internaldate_wins_over_header(self):
        internal = datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert parse_email(1, make_raw_email(), internal).date == internal

    def test_header_date_is_used_without_internaldate(self):
        assert parse_email(1, make_raw_email()).date == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_missing_date_falls_back_to_epoch(self):
        raw = b"From: a@example.com\r\nSubject: x\r\n\r\nbody\r\n"
        assert parse_email(1, raw).date == EPOCH

    def test_missing_sender_and_subject(self):
        raw = b"To: a@example.com\r\n\r\nbody\r\n"
        email = parse_email(1, raw)

        assert email.from_ == "No sender"
        assert email.subject == "No subject"

    def test_name_only_sender(self):
        raw = b"From: Just A Name <>\r\nSubject: x\r\n\r\nbody\r\n"
        assert parse_email(1, raw).from_ == "Just A Name"

    def test_unknown_sender(self):
        raw = b"From: <>\r\nSubject: x\r\n\r\nbody\r\n"
        assert parse_email(1, raw).from_ == "Unknown sender"

    def test_multipart_concatenates_text_parts_and_skips_attachments(self):
        raw = (
            b"From: a@example.com\r\n"
            b"Subject: parts\r\n"
            b"MIME-Version: 1.0\r\n"
            b'Content-Type: multipart/mixed; boundary="XX"\r\n'
            b"\r\n"
            b"--XX\r\n"
            b"Content-Type: text/plain; charset=utf-8\r\n\r\n"
            b"first part\r\n"
            b"--XX\r\n"
            b"Content-Type: text/plain; charset=utf-8\r\n\r\n"
            b"second part\r\n"
            b"--XX\r\n"
            b"Content-Type: text/plain\r\n"
            b'Content-Disposition: attachment; filename="notes.txt"\r\n\r\n'
            b"attached notes\r\n"
            b"--XX--\r\n"
        )
        body = parse_email(1, raw).body

        assert "first part" in body
        assert "second part" in body
        assert body.index("first part") < body.index("second part")
        assert "attached notes" not in body

    def test_html_only_message_is_converted_to_text(self):
        raw = (
            b"From: a@example.com\r\n"
            b"Subject: html\r\n"
            b"Content-Type: text/html; charset=utf-8\r\n\r\n"
            b"<html><body><p>Hello <b>world</b></p></body></html>\r\n"
        )
        body = parse_email(1, raw).body

        assert "Hello world" in body
        assert "<b>" not in body
