import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from api.files.exceptions import CredentialError
from api.files.repository import FileRecordRepository
from api.files.services import FileCoordinator
from api.files.storage import S3BlobStore
from core.deps import get_db, get_grant_issuer, get_s3_client
from main import app

TEST_BUCKET = "test-bucket"


class MockS3Client:
    """Mock S3 client for testing"""

    def __init__(self):
        self.objects = {}  # Store objects: {(bucket, key): {"Body": bytes, "ContentType": str}}
        self.error_mode = {}  # For simulating errors: {operation_name: error_code}
        self.calls = []  # Operation names in call order

    def simulate_error(self, operation: str, error_code: str = "InternalError"):
        """
        Configure client to raise a ClientError for one operation

        Args:
            operation: One of "PutObject", "HeadObject", "DeleteObject"
            error_code: S3 error code to report
        """
        self.error_mode[operation] = error_code

    def _check_error(self, operation: str):
        self.calls.append(operation)
        error_code = self.error_mode.get(operation)
        if error_code:
            raise ClientError(
                {"Error": {"Code": error_code, "Message": f"Simulated {error_code}"}},
                operation,
            )

    def upload_fileobj(self, Fileobj, Bucket: str, Key: str, ExtraArgs=None):
        """Mock managed upload"""
        self._check_error("PutObject")
        self.objects[(Bucket, Key)] = {
            "Body": Fileobj.read(),
            "ContentType": (ExtraArgs or {}).get("ContentType"),
        }

    def head_object(self, Bucket: str, Key: str):
        """Mock head_object"""
        self._check_error("HeadObject")
        if (Bucket, Key) not in self.objects:
            raise ClientError(
                {"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject"
            )
        obj = self.objects[(Bucket, Key)]
        return {"ContentLength": len(obj["Body"]), "ContentType": obj["ContentType"]}

    def get_object(self, Bucket: str, Key: str):
        """Mock get_object (returns raw bytes rather than a stream)"""
        self._check_error("GetObject")
        if (Bucket, Key) not in self.objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        return self.objects[(Bucket, Key)]

    def delete_object(self, Bucket: str, Key: str):
        """Mock delete_object; like S3, silent for missing keys"""
        self._check_error("DeleteObject")
        self.objects.pop((Bucket, Key), None)
        return {}

    def keys(self, bucket: str = TEST_BUCKET) -> list:
        return [key for (b, key) in self.objects if b == bucket]


class MockGrantIssuer:
    """Mock access grant issuer producing predictable URLs"""

    def __init__(self, bucket: str = TEST_BUCKET):
        self.bucket = bucket
        self.fail = False
        self.signed = []  # (key, ttl_minutes) pairs

    def sign(self, key: str, ttl_minutes: int) -> str:
        if self.fail:
            raise CredentialError(
                "No AWS credentials available to sign download URLs", operation="sign"
            )
        self.signed.append((key, ttl_minutes))
        return (
            f"https://{self.bucket}.s3.amazonaws.com/{key}"
            f"?X-Amz-Expires={ttl_minutes * 60}&X-Amz-Signature=test"
        )


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="mock_s3_client")
def mock_s3_client_fixture():
    """Provide a mock S3 client for testing"""
    return MockS3Client()


@pytest.fixture(name="mock_grant_issuer")
def mock_grant_issuer_fixture():
    """Provide a mock URL signer for testing"""
    return MockGrantIssuer()


@pytest.fixture(name="blob_store")
def blob_store_fixture(mock_s3_client: MockS3Client, mock_grant_issuer: MockGrantIssuer):
    return S3BlobStore(mock_s3_client, TEST_BUCKET, mock_grant_issuer)


@pytest.fixture(name="coordinator")
def coordinator_fixture(session: Session, blob_store: S3BlobStore):
    return FileCoordinator(
        blob_store=blob_store,
        repository=FileRecordRepository(session),
        default_ttl_minutes=15,
        min_ttl_minutes=1,
        max_ttl_minutes=7 * 24 * 60,
    )


@pytest.fixture(name="client")
def client_fixture(
    session: Session,
    mock_s3_client: MockS3Client,
    mock_grant_issuer: MockGrantIssuer,
    monkeypatch,
):
    def get_db_override():
        return session

    def get_s3_client_override():
        return mock_s3_client

    def get_grant_issuer_override():
        return mock_grant_issuer

    monkeypatch.setenv("FILE_STORAGE_BUCKET", TEST_BUCKET)
    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_s3_client] = get_s3_client_override
    app.dependency_overrides[get_grant_issuer] = get_grant_issuer_override

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
