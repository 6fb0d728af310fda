from datetime import datetime, timezone


def utc_now() -> datetime:
    '''Current instant as an aware UTC datetime.'''
    return datetime.now(timezone.utc)

def format_clock(timestamp: datetime) -> str:
    '''HH:MM:SS part of the timestamp, as shown on the console.'''
    return timestamp.strftime('%H:%M:%S')
