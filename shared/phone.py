"""
Phone number normalization shared by every notification channel.

Canonical form is digits only, country code first, no "+":

    normalize_phone("09301680755")  -> "919301680755"
    normalize_phone("+91 93016 80755") -> "919301680755"
    normalize_phone("9301680755")   -> "919301680755"

Rule:
1. Keep digits only.
2. Strip leading zeros (national trunk prefix "0", international prefix "00").
3. Fewer than `national_length` digits is rejected.
4. Exactly `national_length` digits gets the default country code.
5. Longer numbers that start with a known country code are kept as they are.
6. Anything else gets the default country code.

Every result starts with a known country code and is longer than a national
number, so normalizing twice gives the same value.
"""

import re
from dataclasses import dataclass


class InvalidPhoneNumber(ValueError):
    """The input cannot be turned into a dialable number."""


@dataclass(frozen=True)
class PhoneNumberFormat:
    default_country_code: str = "91"
    known_country_codes: tuple[str, ...] = ("91",)
    national_length: int = 10

    def normalize(self, raw: str) -> str:
        digits = re.sub(r"\D", "", raw or "").lstrip("0")

        if len(digits) < self.national_length:
            raise InvalidPhoneNumber(f"Not a valid phone number: {raw!r}")

        if len(digits) == self.national_length:
            return self.default_country_code + digits

        codes = set(self.known_country_codes) | {self.default_country_code}
        if any(digits.startswith(code) for code in codes):
            return digits

        return self.default_country_code + digits


DEFAULT_FORMAT = PhoneNumberFormat()


def normalize_phone(raw: str, fmt: PhoneNumberFormat = DEFAULT_FORMAT) -> str:
    """Normalize `raw` to the canonical country-code-first digit string."""
    return fmt.normalize(raw)
