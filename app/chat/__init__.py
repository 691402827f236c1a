"""
Chat application.

Only the conversation linkage used by negotiation and settlement lives
here: every offer is discussed in one Conversation between the request's
seeker and the bidding provider.

Usage:
    from chat.services import ChatService

    conversation = ChatService.get_or_create_conversation(job, seeker, provider)
"""
