"""Customer reviews and developer responses."""

from typing import Any, Dict, List, Optional

from ..exceptions import ValidationError
from ..utils import flatten, resource_ref

REVIEW_FIELDS = {
    "rating": "rating",
    "title": "title",
    "body": "body",
    "reviewer_nickname": "reviewerNickname",
    "created_date": "createdDate",
    "territory": "territory",
}

RESPONSE_FIELDS = {
    "response_body": "responseBody",
    "last_modified_date": "lastModifiedDate",
    "state": "state",
}


class CustomerReviewsMixin:
    def customer_reviews(
        self,
        target_app_id: Optional[str] = None,
        limit: int = 20,
        sort: str = "-createdDate",
    ) -> List[Dict[str, Any]]:
        app_id = self._target_app(target_app_id)
        result = self.get(
            f"/apps/{app_id}/customerReviews", params={"limit": limit, "sort": sort}
        )
        return [flatten(review, REVIEW_FIELDS) for review in result.get("data") or []]

    def customer_review_response(self, review_id: str) -> Optional[Dict[str, Any]]:
        response = self._get_optional(f"/customerReviews/{review_id}/response")
        return flatten(response, RESPONSE_FIELDS)

    def create_customer_review_response(self, review_id: str, response_body: str) -> Dict[str, Any]:
        if not response_body or not response_body.strip():
            raise ValidationError("Response body cannot be empty")
        result = self._create_resource(
            "customerReviewResponses",
            {"responseBody": response_body},
            {"review": resource_ref("customerReviews", review_id)},
        )
        return flatten(result["data"], RESPONSE_FIELDS)

    def delete_customer_review_response(self, response_id: str) -> Dict[str, Any]:
        return self.delete(f"/customerReviewResponses/{response_id}")
