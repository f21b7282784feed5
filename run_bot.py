"""
Telegram Bot launcher script.

Run with: python run_bot.py
"""

if __name__ == "__main__":
    from chainflow.bot.main import main
    main()
