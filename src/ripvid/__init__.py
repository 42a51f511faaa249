"""
ripvid: provisioning of yt-dlp/ffmpeg/ffprobe and supervised yt-dlp downloads.
"""
