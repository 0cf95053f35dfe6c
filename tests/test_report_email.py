from datetime import date

from reportbot.delivery.report_email import (
    attachment_name,
    compose_report_email,
    frequency_label,
    load_logos,
)


def test_subject_and_attachment_name() -> None:
    email = compose_report_email(
        subject_name="Acme Corp",
        frequency="monthly",
        pdf=b"%PDF",
        report_date=date(2025, 3, 5),
    )

    assert email.subject == "Monthly Backup Report - Acme Corp"
    assert email.attachment.name == "Backup_Report_Acme_Corp_05-03-2025.pdf"
    assert email.attachment.mime_type == "application/pdf"
    assert email.attachment.data == b"%PDF"
    assert email.inline_images == []
    assert "05/03/2025" in email.html_body
    assert "Backup Operations" in email.html_body
    assert "cid:" not in email.html_body


def test_body_escapes_subject_name() -> None:
    email = compose_report_email("<Evil & Co>", "daily", b"", date(2025, 1, 1))

    assert "&lt;Evil &amp; Co&gt;" in email.html_body
    assert "<Evil" not in email.html_body
    assert email.subject == "Daily Backup Report - <Evil & Co>"


def test_unknown_frequency_has_no_label() -> None:
    assert frequency_label("hourly") == ""
    email = compose_report_email("Acme", "hourly", b"", date(2025, 1, 1))
    assert email.subject == "Backup Report - Acme"


def test_attachment_name_strips_unsafe_characters() -> None:
    assert attachment_name("Report", "A/B: C", date(2025, 12, 31)) == "Report_A_B__C_31-12-2025.pdf"


def test_logos_are_inline_and_referenced_by_cid(tmp_path) -> None:
    (tmp_path / "brand.png").write_bytes(b"png-1")
    (tmp_path / "partner.png").write_bytes(b"png-2")
    (tmp_path / "notes.txt").write_text("ignored")

    logos = load_logos(str(tmp_path))
    assert [logo.content_id for logo in logos] == ["brand", "partner"]
    assert all(logo.is_inline for logo in logos)

    email = compose_report_email("Acme", "weekly", b"", date(2025, 1, 1), logos=logos)
    assert 'src="cid:brand"' in email.html_body
    assert 'src="cid:partner"' in email.html_body
    assert email.inline_images == logos


def test_missing_logo_dir_yields_no_logos(tmp_path) -> None:
    assert load_logos(None) == []
    assert load_logos(str(tmp_path / "absent")) == []
