"""Request descriptions for the assistant API's thread/run/message endpoints."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class APIRequest:
    """One HTTP call, independent of how it is sent."""

    method: str
    path: str
    body: dict | None = None
    query: dict[str, str] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    stream: bool = False

    def payload(self) -> dict | None:
        """Return the JSON body, with ``stream: true`` injected for streaming calls."""
        if self.body is None and not self.stream:
            return None
        body = dict(self.body or {})
        if self.stream:
            body["stream"] = True
        return body


def create_thread(messages: list[dict] | None = None) -> APIRequest:
    return APIRequest("POST", "/threads", body={"messages": messages} if messages else {})


def list_threads(limit: int = 100, order: str = "desc") -> APIRequest:
    return APIRequest("GET", "/threads", query={"limit": str(limit), "order": order})


def delete_thread(thread_id: str) -> APIRequest:
    return APIRequest("DELETE", f"/threads/{thread_id}")


def create_message(thread_id: str, content: str) -> APIRequest:
    return APIRequest(
        "POST",
        f"/threads/{thread_id}/messages",
        body={"role": "user", "content": content},
    )


def list_messages(thread_id: str, limit: int = 100, order: str = "desc") -> APIRequest:
    return APIRequest(
        "GET",
        f"/threads/{thread_id}/messages",
        query={"limit": str(limit), "order": order},
    )


def create_run(thread_id: str, assistant_id: str, model: str | None = None) -> APIRequest:
    body = {"assistant_id": assistant_id}
    if model:
        body["model"] = model
    return APIRequest("POST", f"/threads/{thread_id}/runs", body=body, stream=True)


def retrieve_run(thread_id: str, run_id: str) -> APIRequest:
    return APIRequest("GET", f"/threads/{thread_id}/runs/{run_id}")


def submit_tool_outputs(thread_id: str, run_id: str, outputs: list[dict]) -> APIRequest:
    return APIRequest(
        "POST",
        f"/threads/{thread_id}/runs/{run_id}/submit_tool_outputs",
        body={"tool_outputs": outputs},
    )


def cancel_run(thread_id: str, run_id: str) -> APIRequest:
    return APIRequest("POST", f"/threads/{thread_id}/runs/{run_id}/cancel", body={})
