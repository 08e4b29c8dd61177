"""Parsing of certificate expressions that describe what a response certifies."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "RequestCertification",
    "ResponseCertification",
    "Certification",
    "CertificateExpression",
    "ExpressionSyntaxError",
    "parse_certificate_expression",
    "parse_string_list",
]

_STRING_STOP = '\x00\n"'


class ExpressionSyntaxError(ValueError):
    """Raised when a certificate expression does not follow the grammar."""

    def __init__(self, message: str, position: int):
        self.position = position
        super().__init__(f"{message} at position {position}")


@dataclass(frozen=True)
class RequestCertification:
    """The request headers and query parameters that are certified."""

    certified_request_headers: tuple[str, ...] = ()
    certified_query_parameters: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResponseCertification:
    """The response headers that are certified, or excluded from certification."""

    certified_response_headers: tuple[str, ...] = ()
    response_header_exclusions: tuple[str, ...] = ()


@dataclass(frozen=True)
class Certification:
    """What is certified: optionally the request, and always the response."""

    request_certification: RequestCertification | None = None
    response_certification: ResponseCertification = ResponseCertification()


@dataclass(frozen=True)
class CertificateExpression:
    """A parsed certificate expression; no certification when it is None."""

    certification: Certification | None = None


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def fail(self, message: str) -> None:
        raise ExpressionSyntaxError(message, self.pos)

    def ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] == " ":
            self.pos += 1

    def accept(self, literal: str) -> bool:
        if self.text.startswith(literal, self.pos):
            self.pos += len(literal)
            return True
        return False

    def expect(self, literal: str) -> None:
        if not self.accept(literal):
            self.fail(f"expected {literal!r}")

    def end(self) -> None:
        if self.pos != len(self.text):
            self.fail("expected end of input")

    def string(self) -> str:
        self.expect('"')
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in _STRING_STOP:
            self.pos += 1
        value = self.text[start : self.pos]
        self.expect('"')
        return value

    def string_list(self) -> list[str]:
        self.expect("[")
        self.ws()
        items = []
        while self.text.startswith('"', self.pos):
            items.append(self.string())
            self.ws()
        self.expect("]")
        return items

    def expression(self) -> CertificateExpression:
        self.expect("default_certification(")
        self.ws()
        certification = self.validation_args()
        self.ws()
        self.expect(")")
        return CertificateExpression(certification)

    def validation_args(self) -> Certification | None:
        self.expect("ValidationArgs{")
        self.ws()
        certification = None
        if self.accept("no_certification:"):
            self.ws()
            self.expect("Empty{}")
        elif self.accept("certification:"):
            certification = self.certification()
        else:
            self.fail("expected 'no_certification:' or 'certification:'")
        self.ws()
        self.expect("}")
        return certification

    def certification(self) -> Certification:
        self.expect("Certification{")
        self.ws()
        request = None
        if self.accept("no_request_certification:"):
            self.ws()
            self.expect("Empty{}")
        elif self.accept("request_certification:"):
            request = self.request_certification()
        else:
            self.fail("expected 'no_request_certification:' or 'request_certification:'")
        self.ws()
        self.expect(",")
        self.ws()
        self.expect("response_certification:")
        self.ws()
        response = self.response_certification()
        self.ws()
        self.expect("}")
        return Certification(request, response)

    def request_certification(self) -> RequestCertification:
        self.expect("RequestCertification{")
        self.ws()
        self.expect("certified_request_headers:")
        self.ws()
        headers = self.string_list()
        self.ws()
        self.expect(",")
        self.ws()
        self.expect("certified_query_parameters:")
        self.ws()
        parameters = self.string_list()
        self.ws()
        self.expect("}")
        return RequestCertification(tuple(headers), tuple(parameters))

    def response_certification(self) -> ResponseCertification:
        self.expect("ResponseCertification{")
        self.ws()
        if self.accept("response_header_exclusions:"):
            exclusions = True
        elif self.accept("certified_response_headers:"):
            exclusions = False
        else:
            self.fail("expected 'response_header_exclusions:' or 'certified_response_headers:'")
        self.ws()
        headers = tuple(self.header_list())
        self.ws()
        self.expect("}")
        if exclusions:
            return ResponseCertification(response_header_exclusions=headers)
        return ResponseCertification(certified_response_headers=headers)

    def header_list(self) -> list[str]:
        self.expect("ResponseHeaderList{")
        self.ws()
        self.expect("headers:")
        self.ws()
        headers = self.string_list()
        self.ws()
        self.expect("}")
        return headers


def parse_certificate_expression(expression: str) -> CertificateExpression:
    """Parse a complete certificate expression."""
    parser = _Parser(expression)
    result = parser.expression()
    parser.end()
    return result


def parse_string_list(text: str) -> list[str]:
    """Parse a bracketed, space-separated list of double-quoted strings."""
    parser = _Parser(text)
    result = parser.string_list()
    parser.end()
    return result