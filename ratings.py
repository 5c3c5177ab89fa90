import logging

from bson import ObjectId

from database import db, utcnow

logger = logging.getLogger(__name__)


def recompute_provider_rating(provider_id: str):
    """Store the mean booking review rating and review count on the provider."""
    result = list(db["booking"].aggregate([
        {"$match": {"provider_id": provider_id, "user_rating": {"$ne": None}}},
        {"$group": {"_id": "$provider_id", "average": {"$avg": "$user_rating"}, "count": {"$sum": 1}}},
    ]))
    rating = result[0]["average"] if result else 0
    count = result[0]["count"] if result else 0
    db["user"].update_one(
        {"_id": ObjectId(provider_id)},
        {"$set": {"rating": rating, "review_count": count, "updated_at": utcnow()}},
    )
    logger.debug("Provider %s rating %.2f over %d reviews", provider_id, rating, count)
    return rating, count


def recompute_service_rating(service_id: ObjectId):
    """Store the mean of the service's embedded review ratings (0 without reviews)."""
    result = list(db["service"].aggregate([
        {"$match": {"_id": service_id}},
        {"$unwind": "$reviews"},
        {"$group": {"_id": "$_id", "average": {"$avg": "$reviews.rating"}, "count": {"$sum": 1}}},
    ]))
    rating = result[0]["average"] if result else 0
    count = result[0]["count"] if result else 0
    db["service"].update_one(
        {"_id": service_id},
        {"$set": {"rating": rating, "review_count": count, "updated_at": utcnow()}},
    )
    logger.debug("Service %s rating %.2f over %d reviews", service_id, rating, count)
    return rating, count
