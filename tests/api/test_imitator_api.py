"""API tests for the run, download, archive and job history endpoints."""
import io
import zipfile
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect
import pytest

API = "/api/imitator"


class TestRunAPI:
    """Test POST /run."""

    def test_welcome(self, client: TestClient):
        response = client.get(f"{API}/")

        assert response.status_code == 200
        assert response.json() == {"message": "Imitator API"}

    def test_run_single_model(self, run_job):
        """Test a successful run returns one result per model."""
        response = run_job([("flipflop.imi", b"echo verified\n")], options="-merge")

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["models"] == ["flipflop.imi"]
        assert result["property"] == "p.imiprop"
        assert result["options"] == ["-merge"]
        assert result["failed"] is False

        output = result["outputs"][0]
        assert output["prefix"] == "flipflop"
        assert output["status"] == "SUCCESS"
        assert output["exit_code"] == 0
        assert "verified" in output["output"]
        assert "options: -merge" in output["output"]
        assert output["generated_files"] == ["flipflop.res"]
        assert output["paths"] == ["flipflop/flipflop.res"]

    def test_run_several_models_in_order(self, run_job):
        """Test outputs follow upload order."""
        response = run_job([("b.imi", b"sleep 0.5\necho b\n"), ("a.imi", b"echo a\n")])

        outputs = response.json()["result"]["outputs"]
        assert [o["prefix"] for o in outputs] == ["b", "a"]

    def test_output_prefix_option_is_dropped(self, run_job):
        """Test clients cannot redirect the tool's output."""
        response = run_job([("a.imi", b"echo x\n")], options="-output-prefix=/tmp/x -merge")

        assert response.json()["result"]["options"] == ["-merge"]

    def test_failed_model_marks_job_failed(self, run_job):
        """Test a non-zero exit is reported without failing the request."""
        response = run_job([("bad.imi", b"exit 4\n"), ("good.imi", b"echo ok\n")])

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["failed"] is True
        assert result["outputs"][0]["status"] == "NON_ZERO_EXIT"
        assert result["outputs"][0]["exit_code"] == 4
        assert result["outputs"][1]["status"] == "SUCCESS"

    def test_timeout_form_field(self, run_job):
        """Test the per-request timeout stops a hanging model."""
        response = run_job([("hang.imi", b"sleep 60\n")], timeout=0.5)

        output = response.json()["result"]["outputs"][0]
        assert output["status"] == "TIMED_OUT"

    def test_missing_property(self, client: TestClient):
        """Test a run without property is rejected with 400."""
        response = client.post(f"{API}/run", files=[("models", ("a.imi", b"echo x\n"))])

        assert response.status_code == 400
        assert response.json() == {"error": "Model and property fields are required"}

    def test_missing_models(self, client: TestClient):
        """Test a run without models is rejected with 400."""
        response = client.post(f"{API}/run", files=[("property", ("p.imiprop", b"x"))])

        assert response.status_code == 400
        assert "error" in response.json()

    def test_invalid_timeout(self, run_job):
        response = run_job([("a.imi", b"echo x\n")], timeout=-1)

        assert response.status_code == 400

    def test_non_numeric_timeout(self, run_job):
        """Test malformed form fields get the error envelope, not FastAPI's detail list."""
        response = run_job([("a.imi", b"echo x\n")], timeout="soon")

        assert response.status_code == 400
        body = response.json()
        assert set(body) == {"error"}
        assert "timeout" in body["error"]


class TestDownloadAPI:
    """Test POST /download."""

    def test_download_generated_file(self, client: TestClient, run_job):
        """Test downloading a file written by the tool."""
        identifier = run_job([("a.imi", b"echo x\n")]).json()["result"]["identifier"]

        response = client.post(
            f"{API}/download", json={"identifier": identifier, "file": "a.res", "model": "a"}
        )

        assert response.status_code == 200
        assert response.content == b"verified\n"

    def test_download_reported_path(self, client: TestClient, run_job):
        """Test a path from the run result downloads without a separate model field."""
        result = run_job([("a.imi", b"echo x\n")]).json()["result"]
        (path,) = result["outputs"][0]["paths"]

        response = client.post(
            f"{API}/download", json={"identifier": result["identifier"], "file": path}
        )

        assert path == "a/a.res"
        assert response.status_code == 200
        assert response.content == b"verified\n"

    def test_malformed_body(self, client: TestClient):
        response = client.post(f"{API}/download", json=["not", "an", "object"])

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")

    def test_download_uploaded_property(self, client: TestClient, run_job):
        identifier = run_job([("a.imi", b"echo x\n")]).json()["result"]["identifier"]

        response = client.post(f"{API}/download", json={"identifier": identifier, "file": "p.imiprop"})

        assert response.status_code == 200
        assert response.content == b"always safe\n"

    @pytest.mark.parametrize(
        "body",
        [
            {"identifier": "x", "file": "../../../etc/passwd"},
            {"identifier": "..", "file": "passwd"},
            {"identifier": "x", "file": "a.res", "model": "../.."},
        ],
    )
    def test_traversal_is_forbidden(self, client: TestClient, body):
        """Test paths leaving the storage root are refused with 403."""
        response = client.post(f"{API}/download", json=body)

        assert response.status_code == 403
        assert response.json() == {"error": "Invalid file path"}

    def test_missing_fields(self, client: TestClient):
        response = client.post(f"{API}/download", json={"file": "a.res"})

        assert response.status_code == 400
        assert response.json() == {"error": "identifier is required"}

    def test_unknown_file(self, client: TestClient, run_job):
        identifier = run_job([("a.imi", b"echo x\n")]).json()["result"]["identifier"]

        response = client.post(f"{API}/download", json={"identifier": identifier, "file": "nope.res"})

        assert response.status_code == 404
        assert response.json() == {"error": "File not found"}


class TestArchiveAPI:
    """Test POST /archive."""

    def test_archive_then_download(self, client: TestClient, run_job):
        """Test every generated file ends up in the downloadable archive."""
        identifier = run_job(
            [("a.imi", b"write .dot\n"), ("b.imi", b"echo b\n")]
        ).json()["result"]["identifier"]

        response = client.post(f"{API}/archive", json={"identifier": identifier})

        assert response.status_code == 200
        assert response.json()["result"] == {"identifier": identifier, "file": "outputs.zip"}

        download = client.post(f"{API}/download", json={"identifier": identifier, "file": "outputs.zip"})
        assert download.status_code == 200
        with zipfile.ZipFile(io.BytesIO(download.content)) as zf:
            assert sorted(zf.namelist()) == ["a/a.dot", "a/a.res", "b/b.res"]

    def test_unknown_job(self, client: TestClient):
        response = client.post(f"{API}/archive", json={"identifier": "does-not-exist"})

        assert response.status_code == 404

    def test_invalid_identifier(self, client: TestClient):
        response = client.post(f"{API}/archive", json={"identifier": "../uploads"})

        assert response.status_code == 403

    def test_missing_identifier(self, client: TestClient):
        response = client.post(f"{API}/archive", json={})

        assert response.status_code == 400


class TestJobsAPI:
    """Test the job history endpoints."""

    def test_get_job(self, client: TestClient, run_job):
        result = run_job([("a.imi", b"echo x\n")]).json()["result"]

        response = client.get(f"{API}/jobs/{result['identifier']}")

        assert response.status_code == 200
        stored = response.json()["result"]
        assert stored["identifier"] == result["identifier"]
        assert stored["outputs"][0]["output"] == result["outputs"][0]["output"]

    def test_get_unknown_job(self, client: TestClient):
        response = client.get(f"{API}/jobs/does-not-exist")

        assert response.status_code == 404
        assert "not found" in response.json()["error"]

    def test_list_jobs(self, client: TestClient, run_job):
        first = run_job([("a.imi", b"echo x\n")]).json()["result"]["identifier"]
        second = run_job([("b.imi", b"echo y\n")]).json()["result"]["identifier"]

        response = client.get(f"{API}/jobs")

        assert response.status_code == 200
        identifiers = [job["identifier"] for job in response.json()["result"]]
        assert identifiers[:2] == [second, first]


class TestStreamAPI:
    """Test the output WebSocket."""

    def test_stream_replays_finished_run(self, client: TestClient, run_job):
        """Test a late subscriber receives the buffered output and the end message."""
        result = run_job([("a.imi", b"echo streamed\n")]).json()["result"]
        identifier = result["identifier"]

        messages = []
        with client.websocket_connect(f"{API}/stream/{identifier}/a") as websocket:
            while True:
                message = websocket.receive_json()
                messages.append(message)
                if message["kind"] == "end":
                    break

        assert messages[-1] == {"identifier": identifier, "prefix": "a", "kind": "end", "data": "SUCCESS"}
        assert "".join(m["data"] for m in messages[:-1]) == result["outputs"][0]["output"]

    def test_invalid_segment_is_refused(self, client: TestClient):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"{API}/stream/job/a%5Cb") as websocket:
                websocket.receive_json()

    def test_unknown_stream_closes(self, client: TestClient):
        """Test subscribing to a stream no job opened ends at once."""
        with client.websocket_connect(f"{API}/stream/no-such-job/a") as websocket:
            with pytest.raises(WebSocketDisconnect):
                websocket.receive_json()
