"""Client domain - Clients, their addresses and cleaning preferences"""
