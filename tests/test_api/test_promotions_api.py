"""
促销API接口测试
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from app.main import app
from app.api.promotions import get_promotion_service
from app.models.database.promotion_db import PromotionDB
from app.models.promotion import DiscountType, Promotion, PromotionScope, PromotionType, PromotionStats
from app.repositories.promotion_repository import PromotionRepository
from app.services.promotion_service import PromotionService


@pytest.fixture
def sample_promotion():
    return Promotion(
        id="promo_001",
        name="Soldes d'été",
        type=PromotionType.CODE,
        code="SUMMER20",
        scope=PromotionScope.SITE_WIDE,
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("20"),
        start_date=datetime.now() - timedelta(days=1)
    )


@pytest.fixture
def mock_promotion_repo():
    return AsyncMock(spec=PromotionRepository)


@pytest.fixture
def client(mock_promotion_repo):
    """测试客户端，不启动生命周期（不连接数据库和Redis）"""
    app.dependency_overrides[get_promotion_service] = lambda: PromotionService(mock_promotion_repo)
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestPromotionsApi:
    """促销接口测试"""

    def test_apply_valid_code(self, client, mock_promotion_repo, sample_promotion):
        mock_promotion_repo.get_by_code.return_value = PromotionDB(id="promo_001")
        mock_promotion_repo.to_model.return_value = sample_promotion

        response = client.post("/api/promotions/apply", json={
            "code": "summer20",
            "items": [{"product_id": "A", "quantity": 2, "unit_price": "50.00"}],
            "subtotal": "100.00"
        })

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert Decimal(data["discount_amount"]) == Decimal("20.00")
        assert data["affected_items"] == ["A"]

    def test_apply_invalid_code_returns_200(self, client, mock_promotion_repo):
        """业务失败以 valid=false 返回，不使用4xx"""
        mock_promotion_repo.get_by_code.return_value = None

        response = client.post("/api/promotions/apply", json={
            "code": "NOPE",
            "items": [],
            "subtotal": "10"
        })

        assert response.status_code == 200
        assert response.json()["valid"] is False
        assert response.json()["message"] == "Code promo invalide"

    def test_validate_code(self, client, mock_promotion_repo, sample_promotion):
        mock_promotion_repo.get_by_code.return_value = PromotionDB(id="promo_001")
        mock_promotion_repo.to_model.return_value = sample_promotion

        response = client.post("/api/promotions/validate", json={"code": "SUMMER20"})

        assert response.status_code == 200
        assert response.json()["valid"] is True

    def test_calculate_prices(self, client, mock_promotion_repo, sample_promotion):
        automatic = sample_promotion.model_copy(update={
            "id": "auto", "type": PromotionType.AUTOMATIC, "code": None, "discount_value": Decimal("10")
        })
        mock_promotion_repo.get_active_promotions.return_value = [PromotionDB(id="auto")]
        mock_promotion_repo.to_model.return_value = automatic

        response = client.post("/api/promotions/calculate", json={
            "products": [
                {"product_id": "A", "original_price": "40"},
                {"product_id": "B", "variants": [{"variant_id": "v1", "sku": "B-1", "original_price": "20"}]}
            ]
        })

        assert response.status_code == 200
        data = response.json()
        assert [p["product_id"] for p in data["products"]] == ["A", "B"]
        assert Decimal(data["products"][0]["reduced_price"]) == Decimal("36.00")
        assert data["products"][1]["variants"][0]["discount_percentage"] == 10
        assert Decimal(data["total_saved"]) == Decimal("6.00")

    def test_cart_promotions(self, client, mock_promotion_repo, sample_promotion):
        mock_promotion_repo.get_active_promotions.return_value = [PromotionDB(id="promo_001")]
        mock_promotion_repo.to_model.return_value = sample_promotion

        response = client.post("/api/promotions/cart", json={
            "items": [{"product_id": "A", "quantity": 1, "unit_price": "80"}],
            "subtotal": "80",
            "promo_code": "SUMMER20"
        })

        assert response.status_code == 200
        assert Decimal(response.json()["total_discount"]) == Decimal("16.00")

    def test_invalid_request_body(self, client):
        response = client.post("/api/promotions/apply", json={"code": "X", "items": []})

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestPromotionsAdminApi:
    """后台管理接口测试"""

    def test_get_promotion_not_found(self, client, mock_promotion_repo):
        mock_promotion_repo.get_by_id.return_value = None

        response = client.get("/api/promotions/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "PROMOTION_NOT_FOUND"

    def test_create_promotion(self, client, mock_promotion_repo, sample_promotion):
        mock_promotion_repo.code_exists.return_value = False
        mock_promotion_repo.create.return_value = PromotionDB(id="promo_001")
        mock_promotion_repo.to_model.return_value = sample_promotion

        response = client.post("/api/promotions", json={
            "name": "Soldes d'été",
            "type": "code",
            "code": "summer20",
            "scope": "site-wide",
            "discount_type": "percentage",
            "discount_value": "20",
            "start_date": "2025-06-01T00:00:00"
        })

        assert response.status_code == 201
        assert response.json()["code"] == "SUMMER20"
        created_data = mock_promotion_repo.create.call_args[0][0]
        assert created_data["code"] == "SUMMER20"

    def test_create_promotion_conflict(self, client, mock_promotion_repo):
        mock_promotion_repo.code_exists.return_value = True

        response = client.post("/api/promotions", json={
            "name": "Doublon",
            "type": "code",
            "code": "SUMMER20",
            "scope": "site-wide",
            "discount_type": "percentage",
            "discount_value": "10",
            "start_date": "2025-06-01T00:00:00"
        })

        assert response.status_code == 409

    def test_create_code_promotion_without_code(self, client):
        response = client.post("/api/promotions", json={
            "name": "Sans code",
            "type": "code",
            "scope": "site-wide",
            "discount_type": "percentage",
            "discount_value": "10",
            "start_date": "2025-06-01T00:00:00"
        })

        assert response.status_code == 422

    def test_update_percentage_over_100_rejected(self, client, mock_promotion_repo, sample_promotion):
        """部分更新后按创建规则重新校验"""
        mock_promotion_repo.get_by_id.return_value = PromotionDB(id="promo_001")
        mock_promotion_repo.to_model.return_value = sample_promotion

        response = client.patch("/api/promotions/promo_001", json={"discount_value": "150"})

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_PROMOTION"
        mock_promotion_repo.update.assert_not_called()

    def test_delete_promotion(self, client, mock_promotion_repo):
        mock_promotion_repo.delete.return_value = True

        response = client.delete("/api/promotions/promo_001")

        assert response.status_code == 200

    def test_record_usage(self, client, mock_promotion_repo):
        mock_promotion_repo.increment_usage.return_value = False

        response = client.post("/api/promotions/promo_001/usage", json={"user_id": "user_001"})

        assert response.status_code == 200
        assert response.json() == {"recorded": False}

    def test_stats(self, client, mock_promotion_repo):
        mock_promotion_repo.get_stats.return_value = PromotionStats(total=3, active=2, code_promos=1, automatic=2)

        response = client.get("/api/promotions/stats")

        assert response.status_code == 200
        assert response.json()["active"] == 2


class TestHealthApi:

    def test_health(self):
        response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
