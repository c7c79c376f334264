from sfclient.exceptions import (
    AuthTimeoutError,
    ConfigurationError,
    MissingCredentialsError,
    RequestValidationError,
    SfError,
)


def test_sf_error_defaults():
    err = SfError()

    assert err.message == "Salesforce Error"
    assert err.http_status == 0
    assert str(err) == "Salesforce Error"
    assert "http_status=0" in repr(err)


def test_auth_timeout_is_sf_error():
    err = AuthTimeoutError(1500)

    assert isinstance(err, SfError)
    assert err.code == "AUTH_TIMEOUT"
    assert err.http_status == 0
    assert "1500 ms" in err.message


def test_validation_errors_are_configuration_errors():
    err = RequestValidationError("upsert", ["externalIdValue"])

    assert isinstance(err, ConfigurationError)
    assert str(err) == "upsert() missing required field(s): externalIdValue"


def test_missing_credentials_lists_names():
    err = MissingCredentialsError(["SF_CLIENT_ID", "SF_CLIENT_SECRET"])

    assert err.missing == ["SF_CLIENT_ID", "SF_CLIENT_SECRET"]
    assert "SF_CLIENT_ID, SF_CLIENT_SECRET" in str(err)
