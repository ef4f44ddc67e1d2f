"""Shared fixtures: moto-backed S3 and the 2 MiB line fixture."""

import boto3
import pytest
from moto import mock_aws

BUCKET = "fasthandle-test"
ENDPOINT = "s3.amazonaws.com"
S3_PREFIX = f"s3://testing:testing@{ENDPOINT}"

# 65536 lines of 32 bytes: "." + line number right-aligned in 30 columns + "\n"
TWO_MB = b"".join(b"." + str(i).rjust(30).encode() + b"\n" for i in range(1, 65537))


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def s3_store(aws_credentials):
    """A mocked bucket holding the 2 MiB fixture and a small object."""
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=BUCKET)
        client.put_object(Bucket=BUCKET, Key="2MBfile.txt", Body=TWO_MB)
        client.put_object(Bucket=BUCKET, Key="dir/small.bin", Body=b"0123456789", ACL="public-read")
        yield client
