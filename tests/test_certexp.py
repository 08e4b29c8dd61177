import pytest

from iccert.certexp import (
    CertificateExpression,
    Certification,
    ExpressionSyntaxError,
    RequestCertification,
    ResponseCertification,
    parse_certificate_expression,
    parse_string_list,
)


def _wrap_certification(fragment):
    return f"default_certification(ValidationArgs{{certification:{fragment}}})"


def _wrap_response(fragment):
    return _wrap_certification(
        "Certification{no_request_certification: Empty{},response_certification:" + fragment + "}"
    )


def test_full_header():
    header = (
        "default_certification(ValidationArgs{certification:Certification{"
        "no_request_certification: Empty{},response_certification:ResponseCertification{"
        "response_header_exclusions:ResponseHeaderList{headers:[]}}}})"
    )
    expr = parse_certificate_expression(header)
    assert expr == CertificateExpression(Certification(None, ResponseCertification()))


@pytest.mark.parametrize(
    "text, expected",
    [
        ("[]", []),
        ('[""]', [""]),
        ('["a"]', ["a"]),
        ('["a" "b"]', ["a", "b"]),
        ('["a" "b" "c"]', ["a", "b", "c"]),
    ],
)
def test_string_list(text, expected):
    assert parse_string_list(text) == expected


@pytest.mark.parametrize(
    "fragment",
    [
        "Certification{no_request_certification: Empty{},response_certification:"
        "ResponseCertification{response_header_exclusions:ResponseHeaderList{headers:[]}}}",
        "Certification{ no_request_certification: Empty{}, response_certification: "
        "ResponseCertification{ response_header_exclusions: ResponseHeaderList{ headers: [] } } }",
    ],
)
def test_certification(fragment):
    expr = parse_certificate_expression(_wrap_certification(fragment))
    assert expr.certification == Certification(None, ResponseCertification())


@pytest.mark.parametrize(
    "fragment",
    [
        "RequestCertification{certified_request_headers:[],certified_query_parameters:[]}",
        "RequestCertification{ certified_request_headers: [], certified_query_parameters: [] }",
    ],
)
def test_request_certification(fragment):
    text = _wrap_certification(
        "Certification{request_certification:"
        + fragment
        + ",response_certification:ResponseCertification{"
        "certified_response_headers:ResponseHeaderList{headers:[]}}}"
    )
    expr = parse_certificate_expression(text)
    assert expr.certification.request_certification == RequestCertification()


@pytest.mark.parametrize(
    "fragment, expected",
    [
        (
            "ResponseCertification{response_header_exclusions:ResponseHeaderList{headers:[]}}",
            ResponseCertification(),
        ),
        (
            "ResponseCertification{ response_header_exclusions: ResponseHeaderList{ headers: [] } }",
            ResponseCertification(),
        ),
        (
            "ResponseCertification{certified_response_headers:ResponseHeaderList{headers:[]}}",
            ResponseCertification(),
        ),
    ],
)
def test_response_certification(fragment, expected):
    expr = parse_certificate_expression(_wrap_response(fragment))
    assert expr.certification.response_certification == expected


def test_header_lists_are_kept():
    text = _wrap_certification(
        'Certification{request_certification:RequestCertification{certified_request_headers:["host"],'
        'certified_query_parameters:["q" "name"]},response_certification:ResponseCertification{'
        'certified_response_headers:ResponseHeaderList{headers:["content-type"]}}}'
    )
    certification = parse_certificate_expression(text).certification
    assert certification.request_certification == RequestCertification(("host",), ("q", "name"))
    assert certification.response_certification == ResponseCertification(
        certified_response_headers=("content-type",)
    )


def test_exclusions_are_kept():
    text = _wrap_response(
        'ResponseCertification{response_header_exclusions:ResponseHeaderList{headers:["date" "etag"]}}'
    )
    response = parse_certificate_expression(text).certification.response_certification
    assert response.response_header_exclusions == ("date", "etag")
    assert response.certified_response_headers == ()


def test_no_certification():
    expr = parse_certificate_expression(
        "default_certification( ValidationArgs{ no_certification: Empty{} } )"
    )
    assert expr.certification is None


def test_trailing_input_rejected():
    with pytest.raises(ExpressionSyntaxError):
        parse_certificate_expression(
            "default_certification(ValidationArgs{no_certification:Empty{}})x"
        )


def test_unknown_response_kind_rejected():
    with pytest.raises(ExpressionSyntaxError):
        parse_certificate_expression(
            _wrap_response("ResponseCertification{headers:ResponseHeaderList{headers:[]}}")
        )


def test_unterminated_string_list():
    with pytest.raises(ExpressionSyntaxError) as info:
        parse_string_list('["a"')
    assert info.value.position == 4