from __future__ import annotations

from typing import Dict, Optional, Tuple


NGN_SYMBOL = "₦"
NIGERIA_FLAG = "🇳🇬"
DEFAULT_FLAG = "🌍"

CURRENCY_SYMBOLS: Dict[str, str] = {
    "usd": "$", "eur": "€", "gbp": "£", "jpy": "¥", "cad": "C$",
    "aud": "A$", "chf": "Fr", "cny": "¥", "inr": "₹", "krw": "₩",
    "sgd": "S$", "hkd": "HK$", "nzd": "NZ$", "mxn": "$", "brl": "R$",
    "rub": "₽", "zar": "R", "try": "₺", "sek": "kr", "nok": "kr",
    "dkk": "kr", "pln": "zł", "czk": "Kč", "huf": "Ft", "bgn": "лв",
    "ron": "lei", "ngn": NGN_SYMBOL, "ghs": "₵", "kes": "KSh",
    "ugx": "USh", "tzs": "TSh", "rwf": "FRw", "mur": "₨", "mad": "MAD",
    "egp": "£", "cop": "$", "pen": "S/", "clp": "$", "ars": "$",
    "php": "₱", "thb": "฿", "vnd": "₫", "idr": "Rp", "myr": "RM",
    "pkr": "₨", "bdt": "৳",
}

# Country -> (currency, units per USD). Rates are display estimates only.
COUNTRY_CURRENCIES: Dict[str, Tuple[str, float]] = {
    "ng": ("ngn", 1500.0),
    "ke": ("kes", 150.0),
    "us": ("usd", 1.0),
    "gb": ("gbp", 0.8),
    "ca": ("cad", 1.35),
    "au": ("aud", 1.5),
    "za": ("zar", 18.0),
    "gh": ("ghs", 12.0),
    "tz": ("tzs", 2300.0),
    "ug": ("ugx", 3700.0),
}

COUNTRY_FLAGS: Dict[str, str] = {
    "ng": NIGERIA_FLAG, "ke": "🇰🇪", "us": "🇺🇸", "gb": "🇬🇧", "ca": "🇨🇦",
    "au": "🇦🇺", "za": "🇿🇦", "gh": "🇬🇭", "tz": "🇹🇿", "ug": "🇺🇬",
    "rw": "🇷🇼", "et": "🇪🇹", "ma": "🇲🇦", "eg": "🇪🇬", "dz": "🇩🇿",
    "tn": "🇹🇳", "ao": "🇦🇴", "mz": "🇲🇿", "mg": "🇲🇬", "cm": "🇨🇲",
    "fr": "🇫🇷", "de": "🇩🇪", "it": "🇮🇹", "es": "🇪🇸", "jp": "🇯🇵",
    "cn": "🇨🇳", "in": "🇮🇳", "br": "🇧🇷", "mx": "🇲🇽", "ru": "🇷🇺",
}

AFRICAN_COUNTRIES = frozenset({
    "ng", "ke", "za", "gh", "tz", "ug", "rw", "et", "ma", "eg", "dz", "tn",
    "ao", "mz", "mg", "cm", "ci", "bf", "ml", "ne", "td", "sd", "ly", "mr",
    "sn", "gm", "gw", "sl", "lr", "bj", "tg", "cv", "st", "gq", "ga", "cg",
    "cd", "cf", "zm", "zw", "bw", "na", "sz", "ls", "mw", "bi", "dj", "so",
    "er", "ss", "sc", "mu", "km",
})


def currency_symbol(currency: Optional[str]) -> str:
    code = (currency or "ngn").lower()
    return CURRENCY_SYMBOLS.get(code, NGN_SYMBOL)


def country_flag(country_code: Optional[str]) -> str:
    return COUNTRY_FLAGS.get((country_code or "").lower(), DEFAULT_FLAG)


def currency_for_country(country_code: Optional[str]) -> Tuple[str, float]:
    return COUNTRY_CURRENCIES.get((country_code or "").lower(), ("usd", 1.0))


def is_african(country_code: Optional[str]) -> bool:
    return (country_code or "").lower() in AFRICAN_COUNTRIES


def recommended_gateway(currency: Optional[str]) -> str:
    """Paystack settles naira; everything else goes through Stripe."""
    return "paystack" if (currency or "").lower() == "ngn" else "stripe"


def format_amount(amount: Optional[float]) -> str:
    if amount is None:
        return "$0.00"
    return f"${float(amount):.2f}"


def format_localized_amount(
    amount: Optional[float], currency: str = "usd", symbol: Optional[str] = None
) -> str:
    prefix = symbol if symbol is not None else currency_symbol(currency)
    if amount is None:
        return f"{prefix}0.00"
    return f"{prefix}{float(amount):,.2f}"
