from unittest.mock import MagicMock

from solarsat.core.storage import LocalFS, S3Bucket


def test_localfs_round_trip(tmp_path):
    fs = LocalFS()
    uri = fs.join(str(tmp_path), "nested", "out.txt")
    assert fs.write_text(uri, "kappa") == uri
    assert fs.read_bytes(uri) == b"kappa"


def test_s3_bucket_uses_client():
    client = MagicMock()
    client.get_object.return_value = {"Body": MagicMock(read=lambda: b"data")}
    store = S3Bucket("reports", client=client)

    uri = store.join("runs/", "/ri", "metrics.json")
    assert uri == "s3://reports/runs/ri/metrics.json"

    store.write_bytes(uri, b"data")
    client.put_object.assert_called_once_with(
        Bucket="reports", Key="runs/ri/metrics.json", Body=b"data"
    )
    assert store.read_bytes(uri) == b"data"
    client.get_object.assert_called_once_with(Bucket="reports", Key="runs/ri/metrics.json")
