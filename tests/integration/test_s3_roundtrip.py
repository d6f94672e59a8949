"""
Integration tests: S3 driver against a moto mocked bucket.
"""

import io

import pytest

moto = pytest.importorskip("moto")
boto3 = pytest.importorskip("boto3")

from f3.config import Config
from f3.drivers.factory import DriverFactory
from f3.errors import ObjectNotFound, OverwriteForbidden

BUCKET_URL = "https://test-bucket.s3.amazonaws.com"
REGION = "us-east-1"


@pytest.fixture
def mocked_aws(monkeypatch):
    """Mocked AWS with an empty bucket."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    with moto.mock_aws():
        boto3.client("s3", region_name=REGION).create_bucket(Bucket="test-bucket")
        yield


@pytest.fixture
def factory(mocked_aws):
    config = Config(
        bucket_url=BUCKET_URL,
        s3_credentials="testing:testing",
        s3_region=REGION,
        s3_path_style=True,
        features="ls,rm,get,put",
    )
    return DriverFactory.build(config)


class TestS3Roundtrip:
    """Full driver cycle against the mocked bucket."""
    
    def test_put_stat_list_get_delete(self, factory):
        driver = factory.new_driver()
        factory.check_bucket()
        
        assert driver.put_file("/reports/jan.csv", io.BytesIO(b"a,b\n1,2\n")) == 8
        
        info = driver.stat("/reports/jan.csv")
        assert info.size == 8
        assert not info.is_prefix
        assert driver.stat("/reports").is_prefix
        
        seen = []
        driver.list_dir("reports/", seen.append)
        assert [i.key for i in seen] == ["reports/jan.csv"]
        
        size, body = driver.get_file("reports/jan.csv", offset=4)
        assert size == 8
        assert body.read() == b"1,2\n"
        
        size, body = driver.get_file("reports/jan.csv", offset=8)
        assert size == 8
        assert body.read() == b""
        
        driver.delete_file("reports/jan.csv")
        with pytest.raises(ObjectNotFound):
            driver.get_file("reports/jan.csv")
        with pytest.raises(ObjectNotFound):
            driver.delete_file("reports/jan.csv")
    
    def test_metrics_reach_cloudwatch(self, factory):
        """Test that transfers publish GET and PUT metrics."""
        driver = factory.new_driver()
        driver.put_file("file.txt", io.BytesIO(b"12345"))
        _, body = driver.get_file("file.txt")
        assert body.read() == b"12345"
        
        cloudwatch = boto3.client("cloudwatch", region_name=REGION)
        names = {m["MetricName"] for m in cloudwatch.list_metrics(Namespace="f3")["Metrics"]}
        assert names == {"GET", "PUT"}
    
    def test_no_overwrite(self, mocked_aws):
        config = Config(
            bucket_url=BUCKET_URL,
            s3_credentials="testing:testing",
            s3_region=REGION,
            s3_path_style=True,
            features="put",
            no_overwrite=True,
            disable_cloudwatch=True,
        )
        driver = DriverFactory.build(config).new_driver()
        driver.put_file("file.txt", io.BytesIO(b"first"))
        with pytest.raises(OverwriteForbidden):
            driver.put_file("file.txt", io.BytesIO(b"second"))
