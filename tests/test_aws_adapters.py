import io
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from analysis_backend.core.schema import TileResult
from analysis_backend.infrastructure import S3Storage, SqsResultQueue


class FakeSqsClient:
    def __init__(self) -> None:
        self.deleted: list[str] = []
        self.released: list[tuple[str, int]] = []
        self.receive_args: dict = {}

    def get_queue_url(self, QueueName):
        return {"QueueUrl": f"https://sqs.eu-west-1.amazonaws.com/123/{QueueName}"}

    def receive_message(self, **kwargs):
        self.receive_args = kwargs
        body = TileResult(job_id="job-1", x=1, y=2, accessibility=7.0).model_dump_json(by_alias=True)
        return {"Messages": [{"MessageId": "m-1", "Body": body, "ReceiptHandle": "r-1"}]}

    def delete_message(self, QueueUrl, ReceiptHandle):
        self.deleted.append(ReceiptHandle)

    def change_message_visibility(self, QueueUrl, ReceiptHandle, VisibilityTimeout):
        self.released.append((ReceiptHandle, VisibilityTimeout))


class FakeS3Client:
    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], dict] = {}

    def put_object(self, Bucket, Key, Body, **extra):
        self.objects[(Bucket, Key)] = {"Body": Body, **extra}

    def get_object(self, Bucket, Key):
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)]["Body"])}


def test_sqs_queue_resolves_name_and_round_trips_receipts():
    client = FakeSqsClient()
    result_queue = SqsResultQueue("analysis-results", client=client)

    assert result_queue.address == "https://sqs.eu-west-1.amazonaws.com/123/analysis-results"

    (message,) = result_queue.receive(max_messages=50, wait_seconds=60)
    assert client.receive_args["MaxNumberOfMessages"] == 10
    assert client.receive_args["WaitTimeSeconds"] == 20
    assert TileResult.model_validate_json(message.body).x == 1

    result_queue.acknowledge(message)
    result_queue.release(message)
    assert client.deleted == ["r-1"]
    assert client.released == [("r-1", 0)]


def test_sqs_queue_accepts_queue_url():
    result_queue = SqsResultQueue("https://sqs.example/queue", client=FakeSqsClient())

    assert result_queue.address == "https://sqs.example/queue"


def test_s3_storage_put_and_get():
    client = FakeS3Client()
    storage = S3Storage("results-bucket", client=client)

    locator = storage.put("job-1.csv.gz", b"payload", content_type="application/gzip")

    assert locator == "s3://results-bucket/job-1.csv.gz"
    assert client.objects[("results-bucket", "job-1.csv.gz")]["ContentType"] == "application/gzip"
    assert storage.get("job-1.csv.gz") == b"payload"
