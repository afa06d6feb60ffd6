from registry_harvester.extraction import (
    dedupe_preserve_order,
    extract_emails,
    find_mailto_addresses,
    is_excluded,
    is_valid_email,
)


def test_extract_emails_mailto_and_text_lowercased_without_noreply() -> None:
    html = """
    <html><body>
      <a href="mailto:A@B.com">Write us</a>
      <p>contact c@d.co</p>
      <p>noreply@x.com</p>
    </body></html>
    """
    assert extract_emails(html) == ["a@b.com", "c@d.co"]


def test_extract_emails_puts_mailto_first_and_dedupes() -> None:
    html = '<p>office@school.kr</p><a href="mailto:head@school.kr?subject=hi">mail</a> HEAD@school.kr'
    assert extract_emails(html) == ["head@school.kr", "office@school.kr"]


def test_extract_emails_drops_placeholders_and_image_names() -> None:
    html = "admin@site.kr webmaster@site.kr user@example.com logo@2x.png hello@test.org real@site.kr"
    assert extract_emails(html) == ["real@site.kr"]


def test_find_mailto_addresses_ignores_other_links() -> None:
    html = '<a href="/contact">x</a><a href="mailto:">empty</a><a href="MAILTO:team@org.kr">t</a>'
    assert find_mailto_addresses(html) == ["team@org.kr"]


def test_is_excluded_and_is_valid_email() -> None:
    assert is_excluded("no-reply@org.kr") is True
    assert is_excluded("info@example.org") is True
    assert is_excluded("someone@localhost") is True
    assert is_excluded("staff@org.kr") is False
    assert is_valid_email("staff@org.kr") is True
    assert is_valid_email("staff@kr") is False


def test_dedupe_preserve_order() -> None:
    assert dedupe_preserve_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_percent_encoded_mailto_yields_clean_address() -> None:
    html = '<a href="mailto:%20Info@Site.kr">mail</a><p>contact %20office@site.kr</p>'
    assert find_mailto_addresses(html) == ["Info@Site.kr"]
    assert extract_emails(html) == ["info@site.kr", "office@site.kr"]
