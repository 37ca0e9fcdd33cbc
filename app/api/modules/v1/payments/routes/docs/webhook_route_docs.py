# Webhook route documentation for payment provider notifications
payment_webhook_responses = {
    200: {
        "description": "Webhook processed (or already processed)",
        "content": {
            "application/json": {
                "examples": {
                    "processed": {
                        "summary": "Event applied to the vendor subscription",
                        "value": {
                            "status": "SUCCESS",
                            "status_code": 200,
                            "message": "Webhook processed",
                            "data": {
                                "event_id": "evt_1PqXyZ2eZvKYlo2C",
                                "kind": "payment_captured",
                                "action": "transitioned:inactive->active",
                                "subscription_status": "active",
                            },
                        },
                    },
                    "already_processed": {
                        "summary": "Redelivery of an event that was already handled",
                        "value": {
                            "status": "SUCCESS",
                            "status_code": 200,
                            "message": "Event already processed",
                            "data": {
                                "event_id": "evt_1PqXyZ2eZvKYlo2C",
                                "action": "already_processed",
                            },
                        },
                    },
                }
            }
        },
    },
    400: {
        "description": "Bad Request - signature or payload rejected, do not retry",
        "content": {
            "application/json": {
                "examples": {
                    "invalid_signature": {
                        "summary": "Missing or invalid signature header",
                        "value": {
                            "error": "INVALID_SIGNATURE",
                            "message": "Invalid webhook signature",
                            "status_code": 400,
                            "errors": {},
                        },
                    },
                    "unknown_vendor": {
                        "summary": "Vendor reference does not resolve",
                        "value": {
                            "error": "UNKNOWN_VENDOR",
                            "message": "Unknown vendor 3f7be7d0-5c7f-4a52-9f87-7fd970000001",
                            "status_code": 400,
                            "errors": {},
                        },
                    },
                }
            }
        },
    },
    500: {
        "description": "Temporary failure - the provider should retry",
        "content": {
            "application/json": {
                "example": {
                    "error": "RETRY_LATER",
                    "message": "Temporary failure, retry later",
                    "status_code": 500,
                    "errors": {},
                }
            }
        },
    },
}

vendor_subscription_responses = {
    200: {
        "description": "Current subscription of the vendor",
        "content": {
            "application/json": {
                "example": {
                    "status": "SUCCESS",
                    "status_code": 200,
                    "message": "Subscription retrieved",
                    "data": {
                        "vendor_id": "3f7be7d0-5c7f-4a52-9f87-7fd970000001",
                        "status": "active",
                        "last_event_id": "evt_1PqXyZ2eZvKYlo2C",
                        "last_transition_at": "2025-11-25T01:45:27.948456+00:00",
                    },
                }
            }
        },
    },
    404: {
        "description": "Vendor not found",
        "content": {
            "application/json": {
                "example": {
                    "error": "VENDOR_NOT_FOUND",
                    "message": "Vendor not found",
                    "status_code": 404,
                    "errors": {},
                }
            }
        },
    },
}
