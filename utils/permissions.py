import discord

import exception

REQUIRED_PERMISSIONS = ("view_channel", "read_message_history")


def missing_permissions(channel, member: discord.Member | discord.ClientUser) -> list[str]:
    permissions = channel.permissions_for(member)
    return [name for name in REQUIRED_PERMISSIONS if not getattr(permissions, name)]


def check_channel_permissions(channel, member: discord.Member | discord.ClientUser) -> None:
    missing = missing_permissions(channel, member)
    if missing:
        raise exception.AccessDenied(f"missing permissions in {channel.name}: {', '.join(missing)}")
