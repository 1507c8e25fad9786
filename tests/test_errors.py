"""Tests for the TusStore error taxonomy."""

from tusstore.errors import (
    BackendError,
    CapacityError,
    FileNotFound,
    InvalidMetadata,
    OffsetMismatch,
    TusStoreError,
    UploadLengthAlreadySet,
    UploadLengthExceeded,
)


class TestErrors:

    def test_status_hints(self):
        assert FileNotFound("x").http_status == 404
        assert UploadLengthExceeded(2, 1).http_status == 413
        assert OffsetMismatch(0, 4).http_status == 409
        assert UploadLengthAlreadySet().http_status == 400
        assert InvalidMetadata().http_status == 400
        assert BackendError().http_status == 503

    def test_all_share_base(self):
        for exc in (FileNotFound(), UploadLengthAlreadySet(), InvalidMetadata(),
                    BackendError(), CapacityError("full")):
            assert isinstance(exc, TusStoreError)
            assert exc.code
            assert exc.message

    def test_invalid_metadata_is_value_error(self):
        assert isinstance(InvalidMetadata(), ValueError)

    def test_capacity_is_backend_error(self):
        assert isinstance(CapacityError("full"), BackendError)

    def test_exceeded_carries_sizes(self):
        err = UploadLengthExceeded(101, 100, "f")
        assert err.provided == 101
        assert err.upload_length == 100
        assert "101" in err.message or "100" in err.message
        assert err.lower_bound is False
        assert "ProvidedIsLowerBound" not in err.extra_fields

    def test_upload_length_exceeded_lower_bound(self):
        err = UploadLengthExceeded(12, 10, "f", lower_bound=True)
        assert err.provided == 12
        assert "at least 12 bytes" in err.message
        assert err.extra_fields["ProvidedIsLowerBound"] == "true"

    def test_offset_mismatch_carries_offsets(self):
        err = OffsetMismatch(3, 7)
        assert (err.expected, err.actual) == (3, 7)
