import re

from bs4 import BeautifulSoup


def strip_html(text: str) -> str:
    """
    Convert comment HTML from the feed into readable plain text.
    Links become "text (url)", code is wrapped in backticks and
    paragraphs are separated by a blank line.
    """
    soup = BeautifulSoup(text, "lxml")

    for pre in soup.find_all("pre"):
        pre.replace_with(f"\n```\n{pre.get_text()}\n```\n")
    for code in soup.find_all("code"):
        code.replace_with(f"`{code.get_text()}`")
    for link in soup.find_all("a"):
        label = link.get_text()
        href = link.get("href")
        link.replace_with(f"{label} ({href})" if href and href != label else label)
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for p in soup.find_all("p"):
        p.insert_before("\n\n")

    result = soup.get_text().replace("\xa0", " ")
    return re.sub(r"\n{3,}", "\n\n", result).strip()


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."
