from fastapi.testclient import TestClient
from main import app

client = TestClient(app)


def test_root_endpoint():
    """Test the root endpoint returns expected response"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["message"] == "Event Archive Requests"
    assert "version" in data


def test_health_endpoint():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] is True


def test_app_startup():
    assert app.title == "Event Archive Requests"
    assert app.version == "0.1.0"
    paths = {route.path for route in app.routes}
    assert "/api/v1/requests" in paths
    assert "/api/v1/notifications" in paths
