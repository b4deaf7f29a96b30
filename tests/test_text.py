import pytest

from fbar_intake.text import transliterate


def test_maps_every_turkish_letter():
    assert transliterate("ıİğĞüÜşŞöÖçÇ") == "iIgGuUsSoOcC"


def test_company_name():
    assert transliterate("Örnek Şirket A.Ş.") == "Ornek Sirket A.S."


@pytest.mark.parametrize("text", ["Crédit Agricole", "Banco Ñandú", "Société Générale", "東京銀行", "", "12 Main St."])
def test_other_characters_pass_through(text):
    assert transliterate(text) == text


@pytest.mark.parametrize(
    "text",
    ["İş Bankası", "Garanti BBVA, Levent Mah. Çayır Çimen Sk.", "plain ascii", "ğğğ İİİ", "é ü ß"],
)
def test_idempotent(text):
    once = transliterate(text)
    assert transliterate(once) == once
