# agricart/constants/roles.py
from __future__ import annotations

ROLE_ADMIN = "admin"
ROLE_FARMER = "farmer"
ROLE_BUYER = "buyer"

ROLES = {
    ROLE_ADMIN: "Administrator",
    ROLE_FARMER: "Farmer",
    ROLE_BUYER: "Buyer",
}

# Roles a visitor may pick on the public registration form.
# Admins are only created via create_admin.py or promoted by another admin.
SELF_REGISTER_ROLES = (ROLE_BUYER, ROLE_FARMER)
